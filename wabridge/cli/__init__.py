"""CLI module for wabridge."""
