"""Centralized logging configuration for recruitmatch."""
from __future__ import annotations

import logging
from typing import Optional

from recruitmatch.settings import get_settings

# Chatty third-party loggers that drown out batch progress at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "psycopg")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once from ``RM_LOG_LEVEL`` / ``RM_LOG_FORMAT``."""
    if logging.getLogger().handlers:
        return

    settings = get_settings()
    log_level = (level or settings.log_level).upper()

    logging.basicConfig(level=log_level, format=settings.log_format)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
