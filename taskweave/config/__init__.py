"""Configuration module."""

from .settings import (
    AppSettings,
    EngineSettings,
    ProviderConfig,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AppSettings",
    "EngineSettings",
    "ProviderConfig",
    "clear_settings_cache",
    "get_settings",
]
