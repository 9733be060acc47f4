"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. All keys use the
``SHIKAYAT_`` prefix; the Redis URL also honours the canonical
``REDIS_URL`` variable via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the Gram Shikayat complaint portal.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIKAYAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Record store ───────────────────────────────────────────────────
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("SHIKAYAT_REDIS_URL", "REDIS_URL"),
    )
    redis_namespace: str = "shikayat"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: str = "http://localhost:3000"

    # ── Identity gateway ───────────────────────────────────────────────
    # Shared secret the upstream OTP/identity gateway sends alongside the
    # X-User-* headers it has already verified.
    gateway_api_key: str = ""

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    # ── Engine ─────────────────────────────────────────────────────────
    timezone: str = "Asia/Kolkata"
    optimistic_retry_attempts: int = Field(default=3, ge=1, le=10)
    recent_complaints_limit: int = Field(default=10, ge=1)
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    seed_demo_data: bool = False

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
