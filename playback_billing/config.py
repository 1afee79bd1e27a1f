"""
Application Configuration - Pydantic Settings for type-safe config.

All configuration is strongly typed and validated at startup. Components
receive a Settings instance at construction; only the application entry point
reads the module-level instance.
"""

import sys
from decimal import Decimal
from enum import Enum
from pathlib import PurePath

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from playback_billing.exceptions import ValidationError
from playback_billing.validation import ABSOLUTE_MAX_TEXT_LENGTH, validate_currency_code


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class RatePolicyName(str, Enum):
    """Billing policy used to price a usage record."""

    HOURLY = "hourly"
    PER_ITEM_TYPE = "per_item_type"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Tracking - disabled until explicitly enabled
    tracking_enabled: bool = False

    # Billing
    currency_code: str = "USD"
    rate_policy: RatePolicyName = RatePolicyName.HOURLY
    hourly_rate: Decimal = Decimal("1.00")
    movie_rate: Decimal = Decimal("5.00")
    episode_rate: Decimal = Decimal("1.00")
    other_rate: Decimal = Decimal("1.00")
    invoice_period_days: int = 30

    # Text limits used by the sanitizer
    max_title_length: int = 200
    max_description_length: int = 500

    # Storage
    data_dir: str = "./data"
    storage_lock_timeout_seconds: float = 10.0

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Playback Billing API"
    api_version: str = "0.1.0"
    api_description: str = "Playback usage tracking and invoicing"

    # Security - X-API-Key required on every route when set
    api_key: str | None = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    service_name: str = "playback-billing"

    # Observability - Metrics
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        Rates are deliberately not checked here; the rate policies clamp them
        at pricing time.
        """
        errors: list[str] = []

        try:
            self.currency_code = validate_currency_code(self.currency_code)
        except ValidationError as e:
            errors.append(f"CURRENCY_CODE is invalid: {e.message}")

        if not 1 <= self.invoice_period_days <= 365:
            errors.append(
                f"INVOICE_PERIOD_DAYS must be between 1 and 365, got {self.invoice_period_days}"
            )

        for name in ("max_title_length", "max_description_length"):
            value = getattr(self, name)
            if not 1 <= value <= ABSOLUTE_MAX_TEXT_LENGTH:
                errors.append(
                    f"{name.upper()} must be between 1 and {ABSOLUTE_MAX_TEXT_LENGTH}, got {value}"
                )

        if not self.data_dir.strip():
            errors.append("DATA_DIR is required but empty")
        elif ".." in PurePath(self.data_dir).parts:
            errors.append(f"DATA_DIR must not contain '..' segments, got: {self.data_dir}")

        if self.storage_lock_timeout_seconds <= 0:
            errors.append("STORAGE_LOCK_TIMEOUT_SECONDS must be > 0")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
