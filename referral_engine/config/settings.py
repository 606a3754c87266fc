"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql+asyncpg://postgres@localhost/referral_engine"
    database_echo: bool = False

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = "logs/referral_engine.log"

    # Commission schedule bounds
    max_commission_levels: int = Field(
        default=3, ge=1, le=10,
        description="Deepest referral level that can earn commission",
    )
    minimum_commission: Decimal = Field(
        default=Decimal("0.1"), ge=0,
        description="Lowest allowed level percentage",
    )
    maximum_commission: Decimal = Field(
        default=Decimal("50"), ge=0, le=100,
        description="Highest allowed level percentage",
    )

    # Payouts
    minimum_payout: Decimal = Field(
        default=Decimal("50"), ge=0,
        description="Smallest payout an admin may process",
    )
    currency: str = "USD"

    # Invites
    invite_ttl_days: int = Field(
        default=30, ge=1, description="Days until an e-mail invite expires"
    )

    # Password hashing cost
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Referral policy
    allow_inactive_referrers: bool = Field(
        default=True,
        description="Whether deactivated users still accept new referrals",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError(
                "DATABASE_URL must be a postgresql:// or sqlite:// URL"
            )
        return v

    @model_validator(mode="after")
    def validate_commission_bounds(self) -> "Settings":
        """Validate that the commission corridor is not inverted."""
        if self.minimum_commission > self.maximum_commission:
            raise ValueError(
                "MINIMUM_COMMISSION must not exceed MAXIMUM_COMMISSION"
            )
        return self

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG must be False in production environment. "
                    "Set DEBUG=false in your .env file."
                )
            if self.database_url.startswith("sqlite"):
                logger.warning(
                    "SQLite DATABASE_URL in production: row locks are not "
                    "enforced, payouts are only guarded by conditional updates"
                )
        return self


# Global settings instance
settings = Settings()
