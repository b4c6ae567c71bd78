"""Logging setup shared by the API and the orchestration modules."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "strategy_flow"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Child loggers created with ``logging.getLogger(__name__)`` inside the
    package propagate here. Calling this more than once only updates the level.
    """

    logger = logging.getLogger(LOGGER_NAME)
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    if not any(getattr(handler, "_strategy_flow", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._strategy_flow = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


def preview(text: str, limit: int = 200) -> str:
    """Shorten model output for log lines."""

    flattened = " ".join(text.split())
    if len(flattened) <= limit:
        return flattened
    return f"{flattened[:limit]}..."
