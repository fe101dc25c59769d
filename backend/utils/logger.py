"""Structured logging utilities."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from backend.utils.config import get_settings


_LOGGER_INITIALIZED = False

# Per-request client chatter would drown the slot search summaries.
_NOISY_LIBRARY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once.

    Every module logs ``Event | key=value`` lines through the same handler so
    participant fetches, cache decisions and ranking outcomes read as one
    stream.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    settings = get_settings()
    resolved_level = (level or settings.log_level).upper()

    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for name in _NOISY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)
