"""Tests for logging utilities."""

from __future__ import annotations

import logging

from gmail_batch.core.config import LoggingSettings
from gmail_batch.core.logging import (
    KeyValueFormatter,
    build_logging_config,
    configure_logging,
)


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    configure_logging(LoggingSettings(level="DEBUG", structured=False))
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_accepts_lowercase_level() -> None:
    configure_logging(LoggingSettings(level="warning", structured=True))
    assert logging.getLogger().level == logging.WARNING


def test_client_library_loggers_are_quieted() -> None:
    configure_logging(LoggingSettings(level="DEBUG"))

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("googleapiclient.discovery_cache").level == logging.ERROR


def test_structured_config_uses_key_value_formatter() -> None:
    config = build_logging_config(LoggingSettings(structured=True))

    assert config["formatters"]["default"] == {"()": KeyValueFormatter}


def test_key_value_formatter_quotes_message() -> None:
    record = logging.LogRecord(
        "gmail_batch.delivery", logging.INFO, __file__, 1, 'sent "%s"', ("x",), None
    )

    line = KeyValueFormatter().format(record)

    assert "level=INFO" in line
    assert "logger=gmail_batch.delivery" in line
    assert 'msg="sent \\"x\\""' in line
