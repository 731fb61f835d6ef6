"""
Pydantic settings for the birdsql tour.

This module centralizes environment-driven configuration. It uses Pydantic
Settings v2 with SettingsConfigDict to load environment variables from .env
files and the process environment.

The connection endpoint is resolved in this order:
1. Explicit DATABASE_URL variable (preferred)
2. A URL constructed from the POSTGRES_* fields

Pool bounds default to the values the tour demonstrates (5 idle, 10 open,
1 second idle time, 30 second lifetime) and can be overridden with the
POOL_* variables.

Usage:
    from birdsql.config.settings import Settings, get_settings, validate_config

    # Get settings singleton (cached)
    settings = get_settings()

    # Validate all configuration on startup
    validate_config()

    print(settings.pool_max_open_conns)
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

POSTGRES_SYNC_SCHEME = "postgresql+psycopg2"


def get_database_url_sync(url: str) -> str:
    """
    Return ``url`` with the psycopg2 driver named explicitly.

    Converts postgres:// and postgresql:// to postgresql+psycopg2://. URLs that
    already name a driver, or point at another backend, are returned unchanged.
    """
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return url.replace(scheme, f"{POSTGRES_SYNC_SCHEME}://", 1)
    return url


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for local development against the
    Docker Compose postgres service.

    Attributes are organized into logical groups:
    - Environment Configuration
    - Database Configuration
    - Pool Configuration
    - Tour Configuration
    - Logging Configuration
    """

    # =========================================================================
    # Environment Configuration
    # =========================================================================
    environment: str = Field(
        default_factory=lambda: detect_environment(),
        description=(
            "Runtime environment identifier. 'local' renders console logs, "
            "'aws' renders JSON logs."
        ),
    )

    debug: bool = Field(
        default=False,
        description="Echo SQL statements through the engine logger.",
    )

    # =========================================================================
    # Database Configuration
    # =========================================================================
    database_url: str | None = Field(
        default=None,
        description=(
            "PostgreSQL connection URL. If not provided, a URL is constructed "
            "from the postgres_* fields."
        ),
    )

    postgres_db: str = Field(
        default="birds",
        description="PostgreSQL database name.",
    )

    postgres_user: str = Field(
        default="birds",
        description="PostgreSQL username.",
    )

    postgres_password: SecretStr = Field(
        default=SecretStr("birds"),
        description="PostgreSQL password.",
    )

    postgres_host: str = Field(
        default="localhost",
        description="PostgreSQL host name.",
    )

    postgres_port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="PostgreSQL port.",
    )

    # =========================================================================
    # Pool Configuration
    # =========================================================================
    pool_max_idle_conns: int = Field(
        default=5,
        ge=1,
        description="Maximum number of idle connections kept in the pool.",
    )

    pool_max_open_conns: int = Field(
        default=10,
        ge=1,
        description="Maximum number of connections open at the same time.",
    )

    pool_max_idle_time_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Idle connections older than this are discarded on checkout.",
    )

    pool_max_lifetime_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Connections older than this are recycled on checkout.",
    )

    pool_checkout_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Longest wait for a free connection when no deadline is set.",
    )

    # =========================================================================
    # Tour Configuration
    # =========================================================================
    query_timeout_ms: int = Field(
        default=300,
        ge=1,
        le=60_000,
        description="Deadline for the cancellation stage, in milliseconds.",
    )

    sleep_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Server-side delay the cancellation stage asks for.",
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================
    log_level: str = Field(
        default="WARNING",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL.",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        validate_default=True,
        env_prefix="",
    )

    # =========================================================================
    # Validators
    # =========================================================================
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level '{v}'. Must be one of: {valid_levels}")
        return upper_v

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is either 'local' or 'aws'."""
        lower_v = v.lower()
        if lower_v not in {"local", "aws"}:
            raise ValueError(f"Invalid environment '{v}'. Must be 'local' or 'aws'.")
        return lower_v

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str | None) -> str | None:
        """
        Accept the short postgres:// scheme and pin the psycopg2 driver.

        Most hosting providers hand out postgres:// URLs, and a bare
        postgresql:// URL leaves the driver choice to SQLAlchemy.
        """
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        return get_database_url_sync(v)

    @model_validator(mode="after")
    def populate_database_url(self) -> "Settings":
        """
        Ensure database_url is populated without embedding credentials in code.

        If DATABASE_URL is not provided, construct it from the individual
        postgres_* fields.
        """
        if not self.database_url:
            password = self.postgres_password.get_secret_value()
            self.database_url = (
                f"{POSTGRES_SYNC_SCHEME}://{self.postgres_user}:{password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        return self

    @model_validator(mode="after")
    def clamp_idle_to_open(self) -> "Settings":
        """
        Keep the idle bound within the open bound.

        A pool can never hold more idle connections than it may open, so the
        idle bound is reduced to match instead of rejecting the configuration.
        """
        if self.pool_max_idle_conns > self.pool_max_open_conns:
            logger.warning(
                "POOL_MAX_IDLE_CONNS (%d) exceeds POOL_MAX_OPEN_CONNS (%d); "
                "reducing idle bound to match.",
                self.pool_max_idle_conns,
                self.pool_max_open_conns,
            )
            self.pool_max_idle_conns = self.pool_max_open_conns
        return self

    # =========================================================================
    # Helper Methods
    # =========================================================================
    def is_local(self) -> bool:
        """Check if running in local development environment."""
        return self.environment == "local"

    def is_aws(self) -> bool:
        """Check if running in AWS production environment."""
        return self.environment == "aws"

    def get_database_url(self) -> str:
        """Return the resolved database URL."""
        if not self.database_url:
            raise ValueError(
                "database_url is not configured. Check environment settings."
            )
        return self.database_url


def detect_environment() -> str:
    """
    Auto-detect the runtime environment.

    Detection logic:
    1. Check ENVIRONMENT variable (explicit override)
    2. Check for well-known AWS execution variables
    3. Default to 'local'
    """
    env = os.environ.get("ENVIRONMENT", "").lower()
    if env in {"local", "aws"}:
        return env

    for indicator in ("AWS_EXECUTION_ENV", "ECS_CONTAINER_METADATA_URI"):
        if os.environ.get(indicator):
            logger.info(f"Detected AWS environment via {indicator}")
            return "aws"

    return "local"


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    This function is cached to ensure only one Settings instance is created.
    Call ``get_settings.cache_clear()`` in tests after changing the environment.
    """
    return Settings()


def validate_config(settings: Settings | None = None) -> dict[str, Any]:
    """
    Validate configuration settings on startup.

    Args:
        settings: Settings to check. Defaults to the get_settings() singleton.

    Returns:
        dict: Validation result with status, warnings and a settings summary.

    Raises:
        ValueError: If configuration is invalid.
    """
    warnings: list[str] = []

    try:
        if settings is None:
            settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}") from e

    if settings.is_aws() and settings.postgres_password.get_secret_value() == "birds":
        warnings.append(
            "POSTGRES_PASSWORD is using the local default in AWS environment."
        )

    if settings.query_timeout_ms >= settings.sleep_seconds * 1000:
        warnings.append(
            "QUERY_TIMEOUT_MS is not shorter than SLEEP_SECONDS. "
            "The cancellation stage will not be able to cancel anything."
        )

    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    return {
        "status": "ok",
        "environment": settings.environment,
        "warnings": warnings,
        "settings_summary": {
            "pool_max_idle_conns": settings.pool_max_idle_conns,
            "pool_max_open_conns": settings.pool_max_open_conns,
            "pool_max_idle_time_seconds": settings.pool_max_idle_time_seconds,
            "pool_max_lifetime_seconds": settings.pool_max_lifetime_seconds,
            "query_timeout_ms": settings.query_timeout_ms,
            "log_level": settings.log_level,
        },
    }


__all__ = [
    "Settings",
    "get_database_url_sync",
    "get_settings",
    "validate_config",
    "detect_environment",
]
