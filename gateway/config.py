"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Nebula Gateway API"
    api_version: str = "1.0.0"
    api_description: str = "Session and entitlement control plane for Nebula AI Studio"
    frontend_url: str = "http://localhost:5173"  # CORS origin

    # Reverse proxy - X-Forwarded-For is only honoured from these peers
    trusted_proxies: list[str] = ["127.0.0.1", "::1"]
    trusted_proxy_hops: int = 1  # proxies that append to X-Forwarded-For

    # Token Issuer - signing secrets MUST come from the environment
    JWT_SECRET: str = ""
    JWT_REFRESH_SECRET: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # Credential Vault - Argon2id cost parameters
    password_hash_time_cost: int = 3
    password_hash_memory_cost: int = 65536  # KiB
    password_hash_parallelism: int = 4
    password_min_length: int = 8

    # Generation Provider (OpenAI-compatible chat completions)
    PROVIDER_API_KEY: str = ""
    provider_base_url: str = "https://openrouter.ai/api/v1"
    provider_model: str = "mistralai/mistral-7b-instruct"
    provider_timeout_seconds: float = 60.0

    # Rate Limiting (fixed windows)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    auth_rate_limit_window_seconds: int = 15 * 60
    auth_rate_limit_max_requests: int = 5
    ai_rate_limit_window_seconds: int = 60
    ai_rate_limit_max_requests: int = 10

    # Credits
    signup_credits: int = 100
    subscription_period_days: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "nebula-gateway"

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
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        # Access and refresh tokens are signed with distinct secrets
        if not self.JWT_SECRET:
            errors.append("JWT_SECRET is required but empty or missing")
        if not self.JWT_REFRESH_SECRET:
            errors.append("JWT_REFRESH_SECRET is required but empty or missing")
        if self.JWT_SECRET and self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            errors.append("JWT_SECRET and JWT_REFRESH_SECRET must be different")

        if self.access_token_expire_minutes <= 0:
            errors.append("ACCESS_TOKEN_EXPIRE_MINUTES must be positive")
        if self.refresh_token_expire_days <= 0:
            errors.append("REFRESH_TOKEN_EXPIRE_DAYS must be positive")

        if self.trusted_proxy_hops < 1:
            errors.append("TRUSTED_PROXY_HOPS must be at least 1")

        # If we have errors, fail immediately with clear messaging
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
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
