"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from decimal import Decimal
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 1800

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Avatar Minutes API"
    api_version: str = "0.1.0"
    api_description: str = "Prepaid minute accounting for live avatar sessions"

    # Service-to-service authentication (cleanup scheduler, payment webhook)
    service_api_key: str = ""

    # User authentication - Supabase access tokens
    supabase_url: str = ""
    supabase_jwt_secret: str = ""  # HS256 secret; JWKS is used when empty
    supabase_jwt_audience: str = "authenticated"

    # LiveAvatar vendor API
    liveavatar_api_key: str = ""
    liveavatar_api_url: str = "https://api.liveavatar.com"
    liveavatar_chat_url: str = "https://api.us.platform.liveavatar.tech/v1/sessions/chat"
    liveavatar_timeout_seconds: float = 10.0
    liveavatar_language: str = "en"
    liveavatar_default_avatar_id: str = "default"
    liveavatar_default_voice_id: str = "default"

    # Credit accounting
    credit_policy: Literal["upfront", "on_settlement"] = "upfront"
    cleanup_grace_period_seconds: int = 300
    default_price_per_minute_eur: Decimal = Decimal("1.5")

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "avatar-minutes-api"

    # Migrations
    run_migrations_on_startup: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.cleanup_grace_period_seconds < 0:
            errors.append("CLEANUP_GRACE_PERIOD_SECONDS cannot be negative")

        if self.default_price_per_minute_eur <= 0:
            errors.append("DEFAULT_PRICE_PER_MINUTE_EUR must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def supabase_jwks_url(self) -> str:
        """JWKS endpoint of the Supabase auth server."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"

    @property
    def supabase_issuer(self) -> str:
        """Expected `iss` claim of Supabase access tokens."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1"


# Global settings instance - validates at import time
settings = Settings()
