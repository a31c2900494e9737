"""Configuration package."""

from account_ledger.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    ParserSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "ParserSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
