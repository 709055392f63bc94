"""Logging setup for the ``fluxguard`` logger namespace.

Every module logs through ``logging.getLogger("fluxguard.<area>")``. Nothing
is configured on import; applications either configure logging themselves or
call ``configure_logging`` once at startup.

Quick Start:
    >>> from fluxguard.foundation.logging import configure_logging
    >>> configure_logging(level="DEBUG", format="json")  # JSON lines on stdout
    >>> configure_logging(get_settings().logging)        # or from settings
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TextIO

import orjson

if TYPE_CHECKING:
    from fluxguard.foundation.config import LoggingSettings

ROOT_LOGGER = "fluxguard"
_HANDLER_NAME = "fluxguard-default"

# LogRecord attributes that are not user supplied ``extra`` fields
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """JSON Lines output for log aggregation."""

    def __init__(self, *, include_timestamps: bool = True) -> None:
        super().__init__()
        self.include_timestamps = include_timestamps

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {"level": record.levelname.lower(), "logger": record.name, "event": record.getMessage()}
        if self.include_timestamps:
            entry["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        entry.update({k: v for k, v in vars(record).items() if k not in _RESERVED})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str, option=orjson.OPT_NON_STR_KEYS).decode()


def _text_formatter(include_timestamps: bool) -> logging.Formatter:
    prefix = "%(asctime)s " if include_timestamps else ""
    return logging.Formatter(f"{prefix}[%(levelname)s] %(name)s: %(message)s")


def configure_logging(
    settings: LoggingSettings | None = None,
    *,
    level: str | None = None,
    format: str | None = None,  # noqa: A002 - matches LoggingSettings.format
    output: TextIO | None = None,
) -> logging.Logger:
    """Install one handler on the ``fluxguard`` logger. Safe to call repeatedly.

    Args:
        settings: LoggingSettings to apply; keyword arguments override it
        level: Level name (DEBUG, INFO, ...)
        format: "text" (human) or "json" (machine)
        output: Stream for the handler (default: stderr for text, stdout for json)

    Returns:
        The configured ``fluxguard`` logger.
    """
    level = (level or (settings.level if settings else "INFO")).upper()
    format = format or (settings.format if settings else "text")
    include_timestamps = settings.include_timestamps if settings else True

    match format:
        case "text": formatter = _text_formatter(include_timestamps)
        case "json": formatter = JsonFormatter(include_timestamps=include_timestamps)
        case _: raise ValueError(f"Unknown format: {format}. Use 'text' or 'json'")

    logger = logging.getLogger(ROOT_LOGGER)
    for existing in [h for h in logger.handlers if h.get_name() == _HANDLER_NAME]:
        logger.removeHandler(existing)
    handler = logging.StreamHandler(output or (sys.stdout if format == "json" else sys.stderr))
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level, logging.INFO))
    return logger
