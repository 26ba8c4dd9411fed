"""Logging setup for the pantry CLI."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING") -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    Safe to call more than once; later calls change the level and point the
    handler at the current ``sys.stderr``.

    Args:
        level: Level name or number

    Returns:
        The ``pantry_tracker`` logger
    """
    logger = logging.getLogger("pantry_tracker")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)

    for existing in logger.handlers:
        if getattr(existing, "_pantry_handler", False):
            existing.stream = sys.stderr  # type: ignore[attr-defined]
            return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._pantry_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
