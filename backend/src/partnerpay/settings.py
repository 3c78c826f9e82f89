"""Application settings and configuration."""

import sys
from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "partnerpay"
    env: str = "development"
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    allowed_origins: str = "http://localhost:3000"
    app_url: str = "https://47industries.com"
    motorev_signup_url: str = "https://motorevapp.com/signup"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 2

    # Database
    database_url: str = "sqlite:///./partnerpay.db"

    # Shared secret for inbound conversion events (checkout, MotoRev backend)
    conversion_api_key: str | None = None

    # Stripe Connect
    stripe_secret_key: str | None = None

    # Rate limits (slowapi syntax)
    default_rate_limit: str = "200/minute"
    click_rate_limit: str = "60/minute"
    conversion_rate_limit: str = "120/minute"
    rate_limit_storage_uri: str = "memory://"

    # Attribution cookies
    affiliate_cookie_days: int = 30

    # Default partner rates
    default_first_sale_rate: Decimal = Field(default=Decimal("50.00"))
    default_recurring_rate: Decimal = Field(default=Decimal("30.00"))
    default_shop_commission_rate: Decimal = Field(default=Decimal("5.00"))
    default_motorev_pro_bonus: Decimal = Field(default=Decimal("2.50"))
    default_motorev_pro_window_days: int = 30


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
