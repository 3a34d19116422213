"""Application settings and configuration."""

import sys

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
    app_name: str = "creditwise"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:3000"
    app_url: str = "http://localhost:3000"

    # Rate limiting (enforced in production only)
    rate_limit_default: str = "200/minute"
    rate_limit_storage_uri: str = "memory://"
    trust_forwarded_for: bool = False

    # JWT (tokens are issued by the identity provider, we only verify them)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Database
    database_url: str = "sqlite:///./creditwise.db"
    database_echo: bool = False

    # Stripe
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_currency: str = "usd"

    # Referral program
    referral_code_length: int = 8


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
