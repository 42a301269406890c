"""Configuration module for wabridge."""

from wabridge.config.loader import load_config, get_config_path
from wabridge.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
