"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - The store connection descriptor and the credential verification
key are validated at startup. Absence is fatal, never a per-request error.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from adminops.exceptions import ConfigurationError

SUPPORTED_DATABASE_SCHEMES = ("postgresql", "postgres", "sqlite")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Store Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations: bool = False

    # Identity token verification
    identity_token_key: str = ""  # HMAC secret or PEM public key
    identity_token_algorithms: str = "HS256"  # Comma-separated
    identity_token_audience: str | None = None
    identity_token_issuer: str | None = None

    # Identity provider admin API (account deletion, custom claims)
    identity_admin_url: str | None = None
    identity_admin_token: str | None = None
    identity_admin_timeout: float = 10.0

    # Service identity
    service_name: str = "adminops"
    service_version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True

    # Listing defaults
    default_page_size: int = 100
    default_log_page_size: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def token_algorithms(self) -> list[str]:
        """Get list of accepted JWT algorithms."""
        return [a.strip() for a in self.identity_token_algorithms.split(",") if a.strip()]

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The executor MUST NOT be built if the store or the credential
        verification material is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(SUPPORTED_DATABASE_SCHEMES):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL or SQLite URL, got: {self.database_url[:20]}..."
            )

        if not self.identity_token_key:
            errors.append("IDENTITY_TOKEN_KEY is required but empty or missing")

        if not self.token_algorithms:
            errors.append("IDENTITY_TOKEN_ALGORITHMS must name at least one algorithm")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - SERVICE CANNOT START",
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
    def identity_admin_configured(self) -> bool:
        """Whether the identity provider admin API can be called."""
        return bool(self.identity_admin_url)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get application settings instance, validating on first access."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
