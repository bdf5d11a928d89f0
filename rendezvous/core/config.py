"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat fields as constructor arguments.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_store_settings() -> "StoreSettings":
    return StoreSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    cors_allow_origins: str = Field(
        "https://fileferry.xyz",
        description="Comma-separated list of origins allowed by CORS",
    )
    client_ip_header: str | None = Field(
        None,
        description=(
            "Trusted proxy header carrying the client address (e.g. X-Forwarded-For). "
            "Leave unset when the service is exposed directly."
        ),
    )
    claim_invalid_as_not_found: bool = Field(
        True,
        description="Report malformed phrases on claim as not found instead of invalid format",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-client request budget shared by register and claim."""

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    requests: int = Field(
        100,
        description="Maximum number of requests allowed per window (per client)",
        ge=1,
    )
    window_seconds: int = Field(
        3600,
        description="Rate limit window size in seconds",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Rendezvous store and KV engine configuration."""

    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="KV engine backing the rendezvous store",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (only used by the redis backend)",
    )
    key_prefix: str = Field(
        "rendezvous:",
        description="Namespace prepended to every phrase key in the KV engine",
    )
    entry_ttl_seconds: int | None = Field(
        600,
        description="Lifetime of an unclaimed entry in seconds (unset for no expiry)",
        ge=1,
    )
    lock_timeout_seconds: float = Field(
        5.0,
        description="Maximum time to wait for a phrase lock before failing",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level name",
    )
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Log destination",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int | None = Field(
        10 * 1024 * 1024,
        description="Rotate the log file at this size (unset disables rotation)",
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
