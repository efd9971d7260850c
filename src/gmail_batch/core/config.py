"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class GoogleSettings(BaseModel):
    """OAuth client registration and Gmail API options."""

    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(
        default=None, description="OAuth client secret"
    )
    redirect_uri: str | None = Field(
        default=None, description="Registered OAuth redirect URI"
    )
    max_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Sub-requests per Gmail HTTP batch",
    )

    def missing_fields(self) -> list[str]:
        """Return the names of unset OAuth registration values."""
        return [
            name
            for name in ("client_id", "client_secret", "redirect_uri")
            if not (getattr(self, name) or "").strip()
        ]

    @property
    def is_configured(self) -> bool:
        return not self.missing_fields()


class WebSettings(BaseModel):
    """Settings for the HTTP surface and its session cookies."""

    domain: str | None = Field(
        default=None, description="Public host the app is served from"
    )
    secret_key: str | None = Field(
        default=None, description="Key used to sign session cookies"
    )
    session_max_age_days: int = Field(
        default=7, ge=1, description="Lifetime of the session cookies"
    )
    secure_cookies: bool = Field(
        default=False, description="Mark session cookies as HTTPS-only"
    )
    send_rate_limit: int = Field(
        default=10, ge=1, description="Batch sends allowed per window"
    )
    send_rate_window_seconds: int = Field(
        default=60, ge=1, description="Sliding window for the send rate limit"
    )


class StorageSettings(BaseModel):
    """Settings for the in-memory history and template stores."""

    history_limit: int = Field(
        default=200, ge=1, description="History entries retained in memory"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Emit key=value structured log lines"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    google: GoogleSettings = Field(default_factory=GoogleSettings)
    web: WebSettings = Field(default_factory=WebSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def missing_setup_fields(self) -> list[str]:
        """Return every value the setup step still has to provide."""
        missing = [f"google.{name}" for name in self.google.missing_fields()]
        if not (self.web.domain or "").strip():
            missing.insert(0, "web.domain")
        return missing


ENV_PREFIX = "GMAIL_BATCH_"


def _env_path(key: str) -> list[str]:
    """Map ``GMAIL_BATCH_GOOGLE__CLIENT_ID`` to ``["google", "client_id"]``."""
    return [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]


def _prefixed(values: Mapping[str, str | None]) -> dict[str, str]:
    """Keep non-empty values whose key carries the application prefix."""
    return {
        key: value
        for key, value in values.items()
        if key and key.startswith(ENV_PREFIX) and value
    }


def _collect_env_values(
    env_file: Path | str | None, include_environment: bool = True
) -> dict[str, Any]:
    """Build the nested settings mapping from an env file and the environment.

    Process environment values win over the file. Empty values are skipped so
    that a cleared variable falls back to the model default; pydantic coerces
    the remaining strings to the field types.
    """
    flat: dict[str, str] = {}
    if env_file and Path(env_file).is_file():
        flat.update(_prefixed(dotenv_values(env_file)))
    if include_environment:
        flat.update(_prefixed(os.environ))

    tree: dict[str, Any] = {}
    for key, value in flat.items():
        path = _env_path(key)
        if not path:
            continue
        node = tree
        for segment in path[:-1]:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                break
            node = child
        else:
            node[path[-1]] = value
    return tree


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "ENV_PREFIX",
    "GoogleSettings",
    "LoggingSettings",
    "StorageSettings",
    "WebSettings",
    "load_app_settings",
]
