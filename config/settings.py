"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Canonical tier IDs
TIER_FREE = "free"
TIER_BASIC = "basic"
TIER_PRO = "pro"
TIER_ULTRA = "ultra"
TIER_ENTERPRISE = "enterprise"

DEFAULT_TRIAL_DAYS = 7


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Identity provider (JWT issued to the browser client)
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    jwt_audience: Optional[str] = Field(default=None, alias="JWT_AUDIENCE")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_price_basic: Optional[str] = Field(default=None, alias="STRIPE_PRICE_BASIC")
    stripe_price_pro: Optional[str] = Field(default=None, alias="STRIPE_PRICE_PRO")
    stripe_price_ultra: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ULTRA")
    stripe_price_enterprise: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ENTERPRISE")

    # Infrastructure configuration
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Subscription behaviour
    trial_days: int = Field(default=DEFAULT_TRIAL_DAYS, alias="TRIAL_DAYS")
    trial_attempts_per_hour: int = Field(default=3, alias="TRIAL_ATTEMPTS_PER_HOUR")
    profile_cache_ttl_seconds: int = Field(default=60, alias="PROFILE_CACHE_TTL_SECONDS")
    profile_cache_max_entries: int = Field(default=1024, alias="PROFILE_CACHE_MAX_ENTRIES")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    def price_tier_map(self) -> dict:
        """Stripe price ID -> subscription tier, for the prices that are configured."""
        pairs = [
            (self.stripe_price_basic, TIER_BASIC),
            (self.stripe_price_pro, TIER_PRO),
            (self.stripe_price_ultra, TIER_ULTRA),
            (self.stripe_price_enterprise, TIER_ENTERPRISE),
        ]
        return {price: tier for price, tier in pairs if price}


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
