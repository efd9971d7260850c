"""Core utilities for configuration, logging, and shared models."""

from .config import AppSettings, GoogleSettings, WebSettings, load_app_settings
from .interfaces import ConfigurationMissingError, TransportError
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "ConfigurationMissingError",
    "GoogleSettings",
    "TransportError",
    "WebSettings",
    "configure_logging",
    "load_app_settings",
]
