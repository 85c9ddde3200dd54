"""Logging setup for the worklog package."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "worklog"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Safe to call repeatedly (each ``create_app`` call does); the handler is
    installed once and only the level is updated afterwards.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if not any(getattr(handler, "_worklog_handler", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._worklog_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
