"""Logging setup shared by the CLI and the web process."""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any

from .config import LoggingSettings

# Client libraries that log every HTTP exchange at INFO.
_QUIET_LOGGERS: dict[str, str] = {
    "googleapiclient.discovery_cache": "ERROR",
    "googleapiclient.http": "WARNING",
    "httpx": "WARNING",
}


class KeyValueFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs with a quoted message."""

    def format(self, record: logging.LogRecord) -> str:
        fields = [
            f"ts={self.formatTime(record, self.datefmt)}",
            f"level={record.levelname}",
            f"logger={record.name}",
            f"msg={json.dumps(record.getMessage())}",
        ]
        if record.exc_info:
            fields.append(f"exc={json.dumps(self.formatException(record.exc_info))}")
        return " ".join(fields)


def build_logging_config(settings: LoggingSettings) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``settings``."""
    level = settings.level.upper()
    if settings.structured:
        formatter: dict[str, Any] = {"()": KeyValueFormatter}
    else:
        formatter = {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            },
        },
        "loggers": {
            name: {"level": quiet_level} for name, quiet_level in _QUIET_LOGGERS.items()
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    logging.config.dictConfig(build_logging_config(settings))


__all__ = ["KeyValueFormatter", "build_logging_config", "configure_logging"]
