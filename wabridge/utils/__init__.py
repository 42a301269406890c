"""Utility functions for wabridge."""

from wabridge.utils.logging import setup_logging

__all__ = ["setup_logging"]
