"""
Configuration Management for BillMinder

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: Settings only hold install-time values and fallbacks.
Values an administrator can change at runtime (free-tier limit, payment
validation toggle) live in the local store and are read per decision.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FREE_BILL_LIMIT = 50
DEFAULT_CURRENCY = "NGN"


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote mirror configuration."""

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
    bills_sheet_name: str = Field(
        default="Bills",
        description="Name of the sheet for bills"
    )
    profiles_sheet_name: str = Field(
        default="Profiles",
        description="Name of the sheet for user profiles"
    )
    config_sheet_name: str = Field(
        default="SystemConfig",
        description="Name of the sheet for administrative configuration"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).expanduser().exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before enabling remote sync."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="BILLMINDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum log level for structured logs"
    )

    # Defaults for new profiles and bills
    default_currency: str = Field(
        default=DEFAULT_CURRENCY,
        min_length=3,
        max_length=3,
        description="Currency assigned to new profiles"
    )
    free_bill_limit: int = Field(
        default=DEFAULT_FREE_BILL_LIMIT,
        ge=0,
        description="Fallback free-tier bill cap when no administrative value is set"
    )

    # Local store
    local_store_path: str = Field(
        default="~/.billminder/store.json",
        description="Path of the local JSON store"
    )

    # Administrative access
    admin_email: Optional[str] = Field(
        default=None,
        description="Email address allowed to use the admin overlay"
    )

    # Remote mirror
    remote_sync_enabled: bool = Field(
        default=False,
        description="Mirror non-anonymous profiles to Google Sheets"
    )
    remote_retry_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts per remote mirror call (1 = no retry)"
    )

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator('log_level')
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def local_store_file(self) -> Path:
        """Resolved path of the local store file."""
        return Path(self.local_store_path).expanduser()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so the app runs without remote config

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    return results
