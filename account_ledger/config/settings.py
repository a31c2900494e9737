"""
Configuration Management for Account Ledger

Every tunable of the ledger is read from the environment (or a .env
file) through pydantic-settings, one settings class per concern:
- ParserSettings: how statement text is split into name and value
- GoogleSheetsSettings: where the persistent store lives
- AppSettings: environment, log level and which store to build
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ParserSettings(BaseSettings):
    """Statement text parser configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_PARSER_",
        extra="ignore"
    )

    min_column_gap: int = Field(
        default=2,
        ge=1,
        le=10,
        description=(
            "Spaces between a name and a bare number (no '$', no thousands "
            "separator) for the number to count as the line's value"
        )
    )


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet and worksheet names for the Sheets-backed store."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    accounts_sheet_name: str = Field(
        default="Accounts",
        description="Name of the sheet for accounts"
    )
    history_sheet_name: str = Field(
        default="History",
        description="Name of the sheet for the account history"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing key file is reported, not fatal; it may be mounted later."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Process-wide settings, read from the environment and .env.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for the structured log"
    )

    # Storage
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which account store to build"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are built on access, so a process that never touches
    Google Sheets does not need its variables set.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def parser(self) -> ParserSettings:
        return ParserSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings root. Tests call get_settings.cache_clear() after
    changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load every settings group.

    Returns a dict of {setting_name: is_valid}, plus `<name>_error`
    entries describing each failure. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("parser", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
