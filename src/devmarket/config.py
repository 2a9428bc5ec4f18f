"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; if a setting is malformed, the app fails fast with a clear error
message.

Usage:
    from devmarket.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the marketplace engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_allow_origins: list[str] = ["*"]

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://devmarket:devmarket_dev"
        "@localhost:5432/devmarket"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (notification stream) ---
    redis_url: str = "redis://localhost:6379/0"
    notification_stream: str = "devmarket:notifications"
    notification_stream_maxlen: int = 100_000

    # --- Outbox relay ---
    outbox_batch_size: int = 100
    outbox_max_attempts: int = 10
    outbox_poll_interval_seconds: float = 2.0

    # --- Marketplace economics (minor currency units) ---
    default_currency: str = "KRW"
    platform_fee_rate: Decimal = Decimal("0.15")
    verified_platform_fee_rate: Decimal = Decimal("0.12")
    verified_seller_min_level: int = 2
    verifier_share_rate: Decimal = Decimal("0.70")
    verification_fee_level_1: int = 50
    verification_fee_level_2: int = 150
    verification_fee_level_3: int = 500

    # --- Payout provider ---
    payout_provider: Literal["simulated", "http"] = "simulated"
    payout_api_url: str = "https://payouts.example.invalid/v1"
    payout_api_key: str = ""
    payout_timeout_seconds: float = 10.0
    payout_max_attempts: int = 3

    # --- Pagination ---
    default_page_size: int = 20
    max_page_size: int = 100

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def verification_fee_table(self) -> dict[int, int]:
        """Level -> fee. Level 0 is automated and always free."""
        return {
            0: 0,
            1: self.verification_fee_level_1,
            2: self.verification_fee_level_2,
            3: self.verification_fee_level_3,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
