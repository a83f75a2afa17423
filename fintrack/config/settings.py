"""
Configuration Management

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firestore and Firebase Authentication configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to the Firebase service account credentials JSON"
    )
    project_id: Optional[str] = Field(
        default=None,
        description="Firebase project id (defaults to the one in the credentials)"
    )
    web_api_key: str = Field(
        ...,
        description="Web API key used by the Identity Toolkit REST API"
    )
    auth_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="HTTP timeout for authentication requests"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
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
    storage_backend: Literal["memory", "firestore"] = Field(
        default="firestore",
        description="Document store backing the ledger"
    )

    default_currency: str = Field(
        default="ARS",
        min_length=1,
        description="Currency preselected in forms"
    )

    # Payment policy
    allow_partial_payments: bool = Field(
        default=True,
        description="Clamp a due payment to the available balance instead of failing"
    )
    cap_payments_at_planned: bool = Field(
        default=True,
        description="Never let amount paid exceed amount planned"
    )

    # Views
    recent_transactions_limit: int = Field(
        default=10,
        ge=1,
        le=200,
        description="How many transactions the dashboard shows"
    )
    due_soon_days: int = Field(
        default=3,
        ge=0,
        le=31,
        description="Unpaid dues within this many days are highlighted"
    )


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

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
        _ = settings.firebase
        results["firebase"] = True
    except Exception as e:
        results["firebase"] = False
        results["firebase_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
