"""Configuration module for waxsync."""

from .settings import (
    CatalogImportSettings,
    DatabaseSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "CatalogImportSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
