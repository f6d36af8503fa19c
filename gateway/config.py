"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout: int = 2
    database_pool_recycle: int = 3600

    # Redis (balance cache + admission counters)
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 2.0
    balance_cache_ttl_seconds: int = 300

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    api_title: str = "PayFlow API Gateway"
    api_version: str = "1.0.0"
    api_description: str = "Authentication, wallet and transfer gateway for PayFlow"
    cors_origins: str = "*"

    # Token signing - access and refresh tokens MUST use distinct secrets
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 3600  # 1 hour
    refresh_token_ttl_days: int = 7

    # Ledger collaborator
    ledger_service_url: str = "http://localhost:8080"
    ledger_timeout_seconds: float = 10.0

    # Wallet defaults
    signup_bonus: Decimal = Decimal("1000.00")
    default_currency: str = "USD"
    add_funds_min: Decimal = Decimal("1")
    add_funds_max: Decimal = Decimal("10000")

    # Admission control (sliding windows per client address)
    general_rate_limit: int = 100
    general_rate_window_seconds: int = 15 * 60
    auth_rate_limit: int = 5
    auth_rate_window_seconds: int = 15 * 60
    transfer_rate_limit: int = 10
    transfer_rate_window_seconds: int = 60
    trust_forwarded_for: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "payflow-api-gateway"

    # Schema management
    run_migrations: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The gateway MUST NOT start without a credential store or without
        signing keys for both token kinds.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.jwt_secret:
            errors.append("JWT_SECRET is required but empty or missing")
        if not self.jwt_refresh_secret:
            errors.append("JWT_REFRESH_SECRET is required but empty or missing")
        if self.jwt_secret and self.jwt_secret == self.jwt_refresh_secret:
            errors.append("JWT_SECRET and JWT_REFRESH_SECRET must be different")

        if self.ledger_timeout_seconds <= 0:
            errors.append("LEDGER_TIMEOUT_SECONDS must be positive")

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
    def allowed_origins(self) -> list[str]:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance - validates at import time
settings = Settings()
