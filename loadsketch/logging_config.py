"""Logging helpers for loadsketch.

The library is silent by default (a NullHandler is attached to the
``loadsketch`` logger). Callers opt in explicitly:

    import loadsketch

    loadsketch.enable_console_logging(level="DEBUG")

or through the environment with :func:`configure_from_env`:

    LOADSKETCH_LOGGING: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    LOADSKETCH_LOG_JSON: Set to "1" for JSON lines on stderr
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Literal, Union

__all__ = [
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_json_logging",
    "set_level",
]

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOGGER_NAME = "loadsketch"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def _get_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _clear_handlers() -> None:
    logger = _get_logger()
    for handler in logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()


def enable_console_logging(
    level: Union[LogLevel, int] = "INFO",
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> logging.StreamHandler:
    """Enable console (stderr) logging for loadsketch and return the handler."""
    logger = _get_logger()
    logger.setLevel(_get_level(level))

    handler = logging.StreamHandler()
    handler.setLevel(_get_level(level))
    handler.setFormatter(logging.Formatter(format, date_format))

    logger.addHandler(handler)
    return handler


def enable_json_logging(level: Union[LogLevel, int] = "INFO") -> logging.StreamHandler:
    """Enable JSON-lines logging on stderr, for log aggregation pipelines."""
    logger = _get_logger()
    logger.setLevel(_get_level(level))

    handler = logging.StreamHandler()
    handler.setLevel(_get_level(level))
    handler.setFormatter(JsonFormatter())

    logger.addHandler(handler)
    return handler


def configure_from_env() -> None:
    """Configure logging from ``LOADSKETCH_LOGGING`` / ``LOADSKETCH_LOG_JSON``.

    Does nothing when no level is set. Handlers from an earlier call are
    replaced, so calling this more than once does not duplicate output.
    """
    level = os.environ.get("LOADSKETCH_LOGGING", "").upper()
    use_json = os.environ.get("LOADSKETCH_LOG_JSON", "") == "1"

    if not level:
        return

    _clear_handlers()
    if use_json:
        enable_json_logging(level=level)
    else:
        enable_console_logging(level=level)


def set_level(level: Union[LogLevel, int]) -> None:
    _get_logger().setLevel(_get_level(level))


def disable_logging() -> None:
    """Remove every handler added by this module and silence the logger."""
    _clear_handlers()
    _get_logger().setLevel(logging.CRITICAL + 1)
