"""Logging configuration and formatters."""

from .json_formatter import StructuredJSONFormatter
from .setup import configure_logging

__all__ = ["StructuredJSONFormatter", "configure_logging"]
