"""Configuration settings for the course escrow marketplace."""
from datetime import timedelta
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Marketplace settings loaded from ``ESCROW_*`` environment variables."""

    # Refund policy
    min_hold_time: timedelta = timedelta(days=1)
    refund_window: timedelta = timedelta(days=7)
    refund_threshold: int = Field(default=30, ge=0, le=100)
    refund_fraction: int = Field(default=70, ge=0, le=100)

    # Withdrawal policy
    min_withdrawal: int = Field(default=10, ge=0)
    withdrawal_cooldown: timedelta = timedelta(days=1)

    # Catalog bounds
    max_price: int = Field(default=10**24, gt=1)
    max_batch_size: int = Field(default=100, gt=0)

    # Default fee split, in percent
    seller_rate: int = Field(default=90, ge=0, le=100)
    platform_rate: int = Field(default=10, ge=0, le=100)
    referrer_rate: int = Field(default=0, ge=0, le=100)

    # Identities
    platform_address: str = "platform"
    escrow_address: str = "escrow"

    model_config = SettingsConfigDict(env_prefix="ESCROW_", env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def _check_fee_split(self) -> "Settings":
        total = self.seller_rate + self.platform_rate + self.referrer_rate
        if total != 100:
            raise ValueError(f"fee rates must sum to 100, got {total}")
        if self.min_hold_time > self.refund_window:
            raise ValueError("min_hold_time cannot exceed refund_window")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
