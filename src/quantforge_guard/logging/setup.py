"""Centralized logging setup for quantforge-guard."""

from __future__ import annotations

import logging

from quantforge_guard.config.settings import GuardSettings
from quantforge_guard.logging.json_formatter import StructuredJSONFormatter

_PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_HANDLER_MARKER = "_quantforge_guard_handler"


def configure_logging(settings: GuardSettings | None = None) -> logging.Logger:
    """
    Install a console handler on the package logger.

    Args:
        settings: Source of ``log_level`` and ``log_json``; defaults are used when omitted.

    Returns:
        The configured ``quantforge_guard`` logger. Calling this twice does not
        stack handlers.
    """
    settings = settings or GuardSettings()
    logger = logging.getLogger("quantforge_guard")
    logger.setLevel(getattr(logging, settings.log_level))

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(getattr(logging, settings.log_level))
    if settings.log_json:
        handler.setFormatter(StructuredJSONFormatter(sort_keys=True))
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    setattr(handler, _HANDLER_MARKER, True)
    logger.addHandler(handler)
    return logger


__all__ = ["configure_logging"]
