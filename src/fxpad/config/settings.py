# src/fxpad/config/settings.py
"""
Settings - Pydantic-based Configuration Management

Provides centralized configuration management using Pydantic Settings.
Every field has a default so the library imports cleanly without an
environment; deployments override values through environment variables or
a .env file.

Files that USE this module:
- fxpad.app (builds services and the background loop from settings)
- fxpad.application.rates_service (provider choice, timeouts, retries)
- fxpad.application.calculator (expression length, default codes)
- fxpad.application.pinned_rate_service (default currency pair)
- fxpad.application.retention_service (reminder delivery window)

Files that this module USES:
- fxpad.shared.validators (validation functions for settings)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fxpad.shared.validators import (
    validate_bot_token,
    validate_chat_id,
    validate_currency_code,
)

PROVIDER_FRANKFURTER = "frankfurter"
PROVIDER_EXCHANGERATE_API = "exchangerateapi"
SUPPORTED_PROVIDERS = (PROVIDER_FRANKFURTER, PROVIDER_EXCHANGERATE_API)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Persistence ---
    store_file: Path = Field(default=Path("./data/fxpad_store.json"), alias="STORE_FILE")

    # --- Rate providers ---
    rates_provider: str = Field(default=PROVIDER_FRANKFURTER, alias="RATES_PROVIDER")
    frankfurter_api_url: str = Field(
        default="https://api.frankfurter.dev/v1", alias="FRANKFURTER_API_URL"
    )
    exchangerate_api_url: str = Field(
        default="https://v6.exchangerate-api.com/v6", alias="EXCHANGERATE_API_URL"
    )
    exchangerate_api_key: str = Field(default="", alias="EXCHANGERATE_API_KEY")

    # --- HTTP / fetch policy ---
    http_timeout_seconds: int = Field(default=10, alias="HTTP_TIMEOUT_SECONDS", ge=1, le=60)
    rate_fetch_timeout_seconds: float = Field(
        default=30.0, alias="RATE_FETCH_TIMEOUT_SECONDS", gt=0, le=600
    )
    rate_fetch_max_retries: int = Field(default=3, alias="RATE_FETCH_MAX_RETRIES", ge=0, le=10)
    rate_fetch_retry_delay_seconds: float = Field(
        default=1.0, alias="RATE_FETCH_RETRY_DELAY_SECONDS", ge=0
    )

    # --- Keypad ---
    max_expression_length: int = Field(default=15, alias="MAX_EXPRESSION_LENGTH", ge=1, le=64)
    default_base_code: str = Field(default="USD", alias="DEFAULT_BASE_CODE")
    default_quote_code: str = Field(default="KES", alias="DEFAULT_QUOTE_CODE")

    # --- Retention reminders ---
    reminder_window_start_hour: int = Field(
        default=10, alias="REMINDER_WINDOW_START_HOUR", ge=0, le=23
    )
    reminder_window_end_hour: int = Field(
        default=20, alias="REMINDER_WINDOW_END_HOUR", ge=1, le=24
    )

    # --- Telegram delivery (optional) ---
    bot_token: str = Field(default="", alias="BOT_TOKEN")
    notify_chat_id: str = Field(default="", alias="NOTIFY_CHAT_ID")

    # --- Background runtime ---
    background_poll_seconds: int = Field(
        default=60, alias="BACKGROUND_POLL_SECONDS", ge=1, le=86400
    )

    # --- Logging ---
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_stdout: bool = Field(default=True, alias="FXPAD_LOG_STDOUT")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")  # 10MB
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    @property
    def default_codes(self) -> tuple[str, str]:
        """Fallback currency pair used when nothing has been selected yet."""
        return (self.default_base_code, self.default_quote_code)

    @property
    def telegram_enabled(self) -> bool:
        """Telegram delivery needs both a bot token and a target chat."""
        return bool(self.bot_token and self.notify_chat_id)

    @field_validator("rates_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate rate provider name."""
        normalized = v.lower().strip()
        if normalized not in SUPPORTED_PROVIDERS:
            raise ValueError(f"RATES_PROVIDER must be one of {', '.join(SUPPORTED_PROVIDERS)}")
        return normalized

    @field_validator("default_base_code", "default_quote_code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Validate default currency codes."""
        normalized = v.upper().strip()
        if not validate_currency_code(normalized):
            raise ValueError("Default currency codes must be 3-letter ISO codes")
        return normalized

    @field_validator("bot_token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate bot token format (only when set)."""
        if v and not validate_bot_token(v):
            raise ValueError("Invalid BOT_TOKEN format")
        return v

    @field_validator("notify_chat_id")
    @classmethod
    def validate_chat(cls, v: str) -> str:
        """Validate chat ID format (only when set)."""
        if v and not validate_chat_id(v):
            raise ValueError("Invalid NOTIFY_CHAT_ID format")
        return v

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        """Cross-field checks."""
        if self.default_base_code == self.default_quote_code:
            raise ValueError("DEFAULT_BASE_CODE and DEFAULT_QUOTE_CODE must differ")
        if self.reminder_window_start_hour >= self.reminder_window_end_hour:
            raise ValueError("REMINDER_WINDOW_START_HOUR must be before REMINDER_WINDOW_END_HOUR")
        return self

    def model_post_init(self, __context) -> None:
        """Post-initialization setup."""
        # Ensure data directory exists
        self.store_file.parent.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
