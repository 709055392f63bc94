"""Configuration management using pydantic-settings."""

from .settings import (
    BreakerSettings,
    FluxguardSettings,
    LoggingSettings,
    MiddlewareSettings,
    PluginSettings,
    RetrySettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "BreakerSettings",
    "FluxguardSettings",
    "LoggingSettings",
    "MiddlewareSettings",
    "PluginSettings",
    "RetrySettings",
    "clear_settings_cache",
    "get_settings",
]
