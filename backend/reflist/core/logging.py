"""
Logging setup.

Configures the loguru logger for the API process: a stderr sink at the
configured level and an optional rotating file sink.
"""

from __future__ import annotations

import sys

from loguru import logger

from reflist.core.config import settings


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Configure logger sinks. Safe to call again; previous sinks are replaced."""
    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else settings.LOG_FILE

    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level,
            encoding="utf-8",
        )

    logger.info("Logging configured (level={}, file={})", level, log_file or "-")
