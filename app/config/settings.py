from __future__ import annotations

"""Application settings using Pydantic Settings.

Loads configuration from environment variables and optional .env file.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default


def split_api_keys(raw: str) -> list[str]:
    """Split a comma-delimited credential list, keeping order and dropping blanks."""

    return [part.strip() for part in raw.split(",") if part.strip()]


class LimitsSettings(BaseModel):
    max_duration_seconds: int = 30 * 60
    # Telegram Bot API refuses downloads above 20 MB
    max_file_size_bytes: int = 20 * 1024 * 1024
    invocation_budget_seconds: float = 55.0


class CacheSettings(BaseModel):
    retention_days: int = 7
    ledger_retention_hours: int = 48
    reaper_enabled: bool = True
    reaper_interval_minutes: int = 60


class Settings(BaseSettings):
    """Top-level application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",  # allow flat extra env like MAX_DURATION_SECONDS
    )

    # Core
    telegram_bot_token: str
    webhook_secret: str
    groq_api_keys: str

    # Database
    db_dsn: str

    # Upstream speech/chat API (OpenAI-compatible)
    upstream_base_url: str = "https://api.groq.com/openai/v1"
    transcription_model: str = "whisper-large-v3"
    chat_model: str = "moonshotai/kimi-k2-instruct"
    upstream_timeout_seconds: float = 60.0

    # App
    app_host: str = "0.0.0.0"
    app_port: int = 8080

    # Logging
    log_level: str = "INFO"

    # Features
    limits: LimitsSettings = LimitsSettings()
    cache: CacheSettings = CacheSettings()
    rate_limit_reaction: str = "🥱"

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in levels:
            raise ValueError("Invalid LOG_LEVEL")
        return v.upper()

    @field_validator("webhook_secret")
    @classmethod
    def _validate_secret(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("WEBHOOK_SECRET must not be empty")
        return v

    @field_validator("groq_api_keys")
    @classmethod
    def _validate_keys(cls, v: str) -> str:
        if not split_api_keys(v):
            raise ValueError("GROQ_API_KEYS must contain at least one key")
        return v

    @property
    def api_keys(self) -> list[str]:
        return split_api_keys(self.groq_api_keys)

    def model_post_init(self, __context: dict[str, object]) -> None:  # type: ignore[override]
        """Map flat env vars into nested settings for convenience."""

        self.limits.max_duration_seconds = _get_int_env("MAX_DURATION_SECONDS", self.limits.max_duration_seconds)
        max_mb = _get_int_env("MAX_FILE_SIZE_MB", 0)
        if max_mb > 0:
            self.limits.max_file_size_bytes = max_mb * 1024 * 1024

        self.cache.retention_days = _get_int_env("CACHE_RETENTION_DAYS", self.cache.retention_days)
        self.cache.reaper_enabled = _get_bool_env("CACHE_REAPER_ENABLED", self.cache.reaper_enabled)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance."""

    return Settings()  # type: ignore[call-arg]
