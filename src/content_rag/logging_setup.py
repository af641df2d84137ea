"""
Logging configuration for the CLI and background workers.

Library modules only create module loggers; handlers are installed here
once by the entry point.
"""

from __future__ import annotations

import logging
import os


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_log_level(override_level: str | None = None) -> int:
    raw_level = (override_level or os.getenv("LOG_LEVEL", "info")).lower()
    return logging.DEBUG if raw_level == "debug" else logging.INFO


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("content_rag")
    logger.setLevel(resolve_log_level(level))

    if not any(getattr(h, "_content_rag", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._content_rag = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logger
