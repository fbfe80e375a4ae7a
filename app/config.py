"""Configuration management for the URL shortener application.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from app.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    redis_addr = settings.DB_ADDR

**Step 3 — Override in tests**::
    settings = Settings(API_QUOTA=3, RATE_LIMIT_REFUND=False)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- An invalid ``API_QUOTA`` (not a positive integer) falls back to the default
  quota instead of failing startup or the request.
- ``DENIED_DOMAINS`` and ``CORS_ALLOW_ORIGINS`` are comma-separated strings.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["DEFAULT_API_QUOTA", "Settings", "get_settings"]

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_QUOTA = 10
MIN_SHORT_CODE_LENGTH = 6


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = Field(default=3000, validation_alias=AliasChoices("APP_PORT", "PORT"))
    LOG_LEVEL: str = "INFO"

    # Redis: either a redis:// / rediss:// URL or a plain host:port
    DB_ADDR: str = "localhost:6379"
    DB_PASS: str = ""
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0

    # Public domain used to build absolute short URLs; empty -> request base URL
    DOMAIN: str = ""

    # Rate limiting
    API_QUOTA: int = DEFAULT_API_QUOTA
    RATE_LIMIT_WINDOW_SECONDS: int = 30 * 60
    RATE_LIMIT_KEY_PREFIX: str = "rl:"
    RATE_LIMIT_REFUND: bool = True

    # Short links
    DEFAULT_EXPIRY_HOURS: int = 24
    SHORT_CODE_LENGTH: int = MIN_SHORT_CODE_LENGTH
    CODE_GENERATION_ATTEMPTS: int = 1
    VISIT_COUNTER_KEY: str = "counter"
    DENIED_DOMAINS: str = ""

    CORS_ALLOW_ORIGINS: str = "*"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("API_QUOTA", mode="before")
    @classmethod
    def fallback_quota(cls, v: Any) -> int:
        try:
            quota = int(v)
        except (TypeError, ValueError):
            return DEFAULT_API_QUOTA
        return quota if quota > 0 else DEFAULT_API_QUOTA

    @field_validator("SHORT_CODE_LENGTH")
    @classmethod
    def enforce_min_code_length(cls, v: int) -> int:
        return max(v, MIN_SHORT_CODE_LENGTH)

    @field_validator("CODE_GENERATION_ATTEMPTS", "DEFAULT_EXPIRY_HOURS", "RATE_LIMIT_WINDOW_SECONDS")
    @classmethod
    def enforce_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def denied_domains(self) -> list[str]:
        return [domain.lower() for domain in _split_csv(self.DENIED_DOMAINS)]

    @property
    def cors_allow_origins(self) -> list[str]:
        return _split_csv(self.CORS_ALLOW_ORIGINS) or ["*"]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
