"""Utilities module for the Sanity search sync connector."""

from utils.logging_utils import configure_logging
from utils.portable_text import flatten_blocks

__all__ = ["configure_logging", "flatten_blocks"]
