"""
Loguru sink configuration.

Call configure_logging() once at process start (the CLI does this in its
callback). Library code only imports `logger` from loguru.
"""

from __future__ import annotations

import sys

from loguru import logger

from progress_engine.config import Settings, get_settings

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{line} | {message}"


def configure_logging(settings: Settings | None = None) -> None:
    """Replace loguru's default sink with the configured ones."""
    settings = settings or get_settings()

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        )
