# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Secrets (JWT, Supabase, OpenAI) are required so that a misconfigured
# deployment fails at startup instead of on the first request.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------

    SUPABASE_URL: str = Field(
        ...,
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (cache, rate limits, Celery broker)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for cache and Celery broker"
    )

    # -------------------------------------------------------------------------
    # OpenAI Configuration
    # -------------------------------------------------------------------------

    OPENAI_API_KEY: str = Field(
        ...,
        description="OpenAI API key for summary generation"
    )

    OPENAI_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Chat model used for summaries and titles"
    )

    OPENAI_TEMPERATURE: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for summaries"
    )

    # -------------------------------------------------------------------------
    # JWT Authentication
    # -------------------------------------------------------------------------

    JWT_SECRET: str = Field(
        ...,
        min_length=32,
        description="Secret used to sign access tokens"
    )

    JWT_REFRESH_SECRET: str = Field(
        ...,
        min_length=32,
        description="Secret used to sign refresh tokens (must differ from JWT_SECRET)"
    )

    JWT_ALGORITHM: str = Field(default="HS256")

    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=15, ge=1, le=1440)

    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7, ge=1, le=90)

    # -------------------------------------------------------------------------
    # Stripe Billing
    # -------------------------------------------------------------------------
    # Optional - billing endpoints answer 503 when not configured

    STRIPE_SECRET_KEY: str | None = Field(default=None)
    STRIPE_WEBHOOK_SECRET: str | None = Field(default=None)
    STRIPE_PRICE_STARTER: str | None = Field(default=None)
    STRIPE_PRICE_PRO: str | None = Field(default=None)
    STRIPE_PRICE_BUSINESS: str | None = Field(default=None)

    # -------------------------------------------------------------------------
    # Email (Resend)
    # -------------------------------------------------------------------------

    RESEND_API_KEY: str | None = Field(
        default=None,
        description="Resend API key. Without it, emails are only logged."
    )

    EMAIL_FROM: str = Field(default="NoteFlow <noreply@noteflow.app>")

    FRONTEND_URL: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build links in emails and Stripe redirects"
    )

    # -------------------------------------------------------------------------
    # RSS Aggregation
    # -------------------------------------------------------------------------

    RSS_RETENTION_DAYS: int = Field(
        default=90,
        ge=1,
        description="Unsaved articles older than this are removed by the cleanup job"
    )

    RSS_MAX_ARTICLE_AGE_DAYS: int = Field(
        default=90,
        ge=1,
        description="Feed items older than this are not imported"
    )

    RSS_FETCH_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging)"
    )

    API_HOST: str = Field(default="0.0.0.0")

    API_PORT: int = Field(default=8000, ge=1, le=65535)

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    RATE_LIMIT_ENABLED: bool = Field(
        default=True,
        description="Enable HTTP rate limiting on auth endpoints"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://myapp.com" -> ["http://localhost:3000", "https://myapp.com"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def stripe_price_ids(self) -> dict[str, str | None]:
        """Map paid plan names to their Stripe price IDs."""
        return {
            "STARTER": self.STRIPE_PRICE_STARTER,
            "PRO": self.STRIPE_PRICE_PRO,
            "BUSINESS": self.STRIPE_PRICE_BUSINESS,
        }

    @property
    def billing_enabled(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
