"""Tests for logging configuration."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator

import orjson
import pytest

from fluxguard.foundation.config import LoggingSettings
from fluxguard.foundation.logging import ROOT_LOGGER, configure_logging


@pytest.fixture(autouse=True)
def restore_logger() -> Iterator[None]:
    """Undo handler and level changes on the fluxguard logger."""
    logger = logging.getLogger(ROOT_LOGGER)
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_json_lines() -> None:
    stream = io.StringIO()
    configure_logging(level="info", format="json", output=stream)

    logging.getLogger("fluxguard.breaker").info("Circuit breaker '%s' opened", "users-api", extra={"attempt": 3})

    entry = orjson.loads(stream.getvalue().splitlines()[-1])
    assert entry["level"] == "info"
    assert entry["logger"] == "fluxguard.breaker"
    assert entry["event"] == "Circuit breaker 'users-api' opened"
    assert entry["attempt"] == 3
    assert "timestamp" in entry


def test_text_format_from_settings() -> None:
    stream = io.StringIO()
    configure_logging(LoggingSettings(level="WARNING", include_timestamps=False), output=stream)

    logger = logging.getLogger("fluxguard.retry")
    logger.info("hidden")
    logger.warning("Retry 1/2 after 1.000s")

    assert stream.getvalue() == "[WARNING] fluxguard.retry: Retry 1/2 after 1.000s\n"


def test_reconfigure_replaces_handler() -> None:
    configure_logging(output=io.StringIO())
    logger = configure_logging(output=io.StringIO())
    assert [h.get_name() for h in logger.handlers].count("fluxguard-default") == 1


def test_unknown_format() -> None:
    with pytest.raises(ValueError, match="Unknown format"):
        configure_logging(format="xml")
