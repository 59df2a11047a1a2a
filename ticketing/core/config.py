"""Application configuration using Pydantic Settings.

Configuration is loaded from environment variables. Optionally point
`ENV_FILE` at a local env file for development; variables already present
in the environment take precedence over the file.
"""

import os
import re
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


# Used only outside production when SECRET_KEY is not configured.
DEV_SECRET_KEY = "dev-insecure-secret-key-change-me-please"


class Settings(BaseSettings):
    """
    Application settings with type validation.

    Configuration is loaded from environment variables, with support
    for .env files in development.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "ticketing-api"
    app_log_level: str = "INFO"
    app_region: str = "local"

    # Observability
    observability_enabled: bool = True
    observability_structured_logs: bool = True
    observability_request_id_header: str = "X-Request-ID"

    # OpenTelemetry Configuration
    otel_enabled: bool = True
    otel_service_name: str = "ticketing-api"
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_exporter_otlp_headers: str | None = None
    otel_traces_sampler: str = "parent_trace_always"
    otel_traces_sampler_arg: float = 1.0

    # Database
    database_url_app: str

    # Auth / tokens
    secret_key: str | None = None
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7
    password_bcrypt_rounds: int = 12

    # Metrics token for protecting /metrics endpoint
    metrics_token: str | None = None

    # When set, /health and /readyz require the X-Health-Token header
    health_token: str | None = None

    # CORS Configuration
    cors_origins: str = "http://localhost:3000,http://localhost:8081"

    # Links in notifications point here
    frontend_url: str = "http://localhost:3000"

    # Commerce
    default_currency: str = "NGN"
    sales_tax_rate_bps: int = 700
    platform_fee_cents: int = 0

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def async_url(self) -> str:
        """Database URL with an async driver selected for PostgreSQL."""
        url = self.database_url_app
        for prefix in ("postgresql://", "postgres://"):
            if url.startswith(prefix):
                # asyncpg spells the libpq sslmode parameter as "ssl"
                url = "postgresql+asyncpg://" + url[len(prefix) :]
                return url.replace("sslmode=", "ssl=")
        return url

    @property
    def signing_key(self) -> str:
        """Key used to sign access and refresh tokens."""
        return self.secret_key or DEV_SECRET_KEY

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("app_region")
    @classmethod
    def validate_app_region(cls, v: str) -> str:
        """Validate app_region follows expected format."""
        if not v or not v.strip():
            raise ValueError("app_region must be set")
        region = v.strip().upper()
        if not re.match(r"^[A-Z0-9][A-Z0-9_-]{0,19}$", region):
            raise ValueError(
                "app_region must be 1-20 alphanumeric characters "
                f"(hyphens/underscores allowed), got '{v}'"
            )
        return region

    @field_validator("default_currency")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """
        Validate production-specific settings.

        These checks prevent insecure configurations from being deployed to production.
        """
        if self.app_env == AppEnvironment.PROD:
            if not self.secret_key or len(self.secret_key) < 32:
                raise ValueError("SECRET_KEY must be set and at least 32 characters in production")

            if not self.database_url_app.startswith(("postgresql://", "postgresql+asyncpg://")):
                raise ValueError("DATABASE_URL_APP must use PostgreSQL in production")
            if "sslmode=require" not in self.database_url_app:
                raise ValueError("DATABASE_URL_APP must use sslmode=require in production")

            for origin in self.cors_origins_list:
                if "localhost" in origin or "127.0.0.1" in origin:
                    raise ValueError(
                        f"CORS origins must not contain localhost in production: {origin}"
                    )

        return self


settings = Settings()
