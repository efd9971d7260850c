"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from gmail_batch.core.config import AppSettings, GoogleSettings, load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.google.client_id is None
    assert settings.google.max_batch_size == 100
    assert settings.web.session_max_age_days == 7
    assert settings.storage.history_limit == 200


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "GMAIL_BATCH_GOOGLE__CLIENT_ID=abc.apps.googleusercontent.com\n"
        "GMAIL_BATCH_WEB__SECURE_COOKIES=true\n"
        "GMAIL_BATCH_GOOGLE__MAX_BATCH_SIZE=25\n"
        "GMAIL_BATCH_WEB__DOMAIN=\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.google.client_id == "abc.apps.googleusercontent.com"
    assert settings.google.max_batch_size == 25
    assert settings.web.secure_cookies is True
    assert settings.web.domain is None


def test_environment_takes_precedence(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text("GMAIL_BATCH_WEB__DOMAIN=file.example.com\n", encoding="utf-8")
    monkeypatch.setenv("GMAIL_BATCH_WEB__DOMAIN", "env.example.com")

    settings = load_app_settings(env_file=env_file)
    assert settings.web.domain == "env.example.com"


def test_missing_setup_fields_lists_everything_unset() -> None:
    settings = AppSettings(google=GoogleSettings(client_id="id", client_secret=" "))

    assert settings.missing_setup_fields() == [
        "web.domain",
        "google.client_secret",
        "google.redirect_uri",
    ]
    assert not settings.google.is_configured
