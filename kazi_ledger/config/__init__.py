"""Configuration package."""

from kazi_ledger.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    StorageSettings,
    SupabaseSettings,
    describe_configuration,
    get_settings,
    load_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "StorageSettings",
    "SupabaseSettings",
    "describe_configuration",
    "get_settings",
    "load_settings",
]
