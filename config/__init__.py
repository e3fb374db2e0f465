"""Configuration module for the Sanity search sync connector."""

from config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
