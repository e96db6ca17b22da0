"""Logging configuration for the tracker service."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stdout handler to the ``cardtime`` logger.

    Safe to call repeatedly; the handler is only added once, later calls just
    update the level.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG").

    Returns:
        The package root logger.
    """
    logger = logging.getLogger("cardtime")
    logger.setLevel(level.upper())

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger
