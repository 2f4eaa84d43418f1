"""
Configuration settings for the entitlement gate service
"""
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGS_DIR = Path("./logs")

# Storage keys for persisted auth records
STORAGE_KEY_USER = "user"
STORAGE_KEY_SUBSCRIPTION = "subscription"
STORAGE_KEY_DEVICE_ID = "device_id"
STORAGE_KEY_PENDING_REFERRER = "pending_referrer"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./entitlement.db", alias="DATABASE_URL")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    storage_key_prefix: str = Field(default="@fintrack_", alias="STORAGE_KEY_PREFIX")

    # Deep linking configuration
    deep_link_scheme: str = Field(default="fintrack", alias="DEEP_LINK_SCHEME")
    deep_link_domains: str = Field(default="fintrack.bg,app.fintrack.bg", alias="DEEP_LINK_DOMAINS")

    # Identity provider (Identity Toolkit REST API)
    identity_api_key: Optional[str] = Field(default=None, alias="IDENTITY_API_KEY")
    identity_base_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        alias="IDENTITY_BASE_URL"
    )
    identity_token_url: str = Field(
        default="https://securetoken.googleapis.com/v1/token",
        alias="IDENTITY_TOKEN_URL"
    )

    # Referral callable functions
    referral_functions_url: Optional[str] = Field(default=None, alias="REFERRAL_FUNCTIONS_URL")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_price_monthly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_MONTHLY")
    stripe_price_quarterly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_QUARTERLY")
    stripe_price_yearly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_YEARLY")

    # Device metadata reported with principals and anti-fraud signals
    app_platform: str = Field(default="android", alias="APP_PLATFORM")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    @property
    def deep_link_domain_list(self) -> List[str]:
        return [d.strip() for d in self.deep_link_domains.split(",") if d.strip()]


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.env and settings.env.lower() == "production")
