"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class CounterBackend(str, Enum):
    """Persistent backends available for rate limit counters."""

    MEMORY = "memory"
    REDIS = "redis"
    SQL = "sql"


class StorageBackend(str, Enum):
    """Object storage backends the proxy can front."""

    MEMORY = "memory"
    MINIO = "minio"


class FailureMode(str, Enum):
    """What the rate limiter does when the counter store is unreachable."""

    OPEN = "open"
    CLOSED = "closed"


class AppSettings(BaseSettings):
    """Gateway-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    object_route_prefix: str = Field(
        "uploads",
        description="Route prefix under which objects are served; also the key prefix in the bucket",
    )
    max_upload_size_mb: int = Field(
        10,
        description="Maximum object upload size in megabytes",
        ge=1,
    )
    debug_routes_enabled: bool = Field(
        False,
        description="Expose /debug/list (development only)",
    )
    admin_api_key_required: bool = Field(
        True,
        description="Whether admin routes (/debug, /_scheduled) require an API key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )
    client_ip_headers: str = Field(
        "CF-Connecting-IP",
        description=(
            "Ordered, comma-separated headers consulted for the client address. "
            "Add X-Real-IP or X-Forwarded-For only behind a proxy that overwrites them"
        ),
    )
    trusted_agent_prefixes: str = Field(
        "Cloudflare-Image-Resizing,imgproxy",
        description="User-agent prefixes admitted without further admission checks",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Two-tier (burst + sustained) limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable admission rate limiting per client fingerprint",
    )
    burst_limit: int = Field(
        10,
        description="Maximum hits allowed per burst window",
        ge=1,
    )
    burst_window_seconds: int = Field(
        10,
        description="Burst window size in seconds",
        ge=5,
        le=60,
    )
    sustained_limit: int = Field(
        100,
        description="Maximum hits allowed per sustained window",
        ge=1,
    )
    sustained_window_seconds: int = Field(
        65,
        description="Sustained window size in seconds",
        ge=1,
    )
    failure_mode: FailureMode = Field(
        FailureMode.OPEN,
        description="Admit (open) or deny with 503 (closed) when the counter store fails",
    )
    include_headers: bool = Field(
        True,
        description="Include RateLimit-* / X-RateLimit-* headers on limited routes",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CounterStoreSettings(BaseSettings):
    """Counter store backend selection and connection details."""

    backend: CounterBackend = Field(
        CounterBackend.MEMORY,
        description="Counter backend: memory, redis or sql",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL for the redis backend",
    )
    redis_namespace: str = Field(
        "gateway:counter:",
        description="Prefix applied to every counter key stored in Redis",
    )
    database_url: str = Field(
        "sqlite+aiosqlite:///./gateway.db",
        description="SQLAlchemy async URL for the sql backend and the expiry side table",
    )
    sql_max_attempts: int = Field(
        5,
        description="Compare-and-swap attempts before an increment is reported as failed",
        ge=1,
    )
    timeout_seconds: float = Field(
        2.0,
        description="Per-operation timeout for counter store calls",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="COUNTER_STORE_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """Object storage backend configuration."""

    backend: StorageBackend = Field(
        StorageBackend.MEMORY,
        description="Object storage backend: memory or minio",
    )
    expiry_backend: str = Field(
        "memory",
        description="Where explicit object expiries are recorded: memory or sql",
        pattern="^(memory|sql)$",
    )
    endpoint: str | None = Field(
        None,
        description="S3/MinIO endpoint, e.g. http://localhost:9000",
    )
    bucket: str = Field(
        "uploads",
        description="Bucket name",
    )
    access_key: str | None = Field(None, description="S3 access key")
    secret_key: str | None = Field(None, description="S3 secret key")
    region: str | None = Field(None, description="S3 region")
    timeout_seconds: float = Field(
        15.0,
        description="Per-operation timeout for storage calls",
        gt=0,
    )
    list_limit: int = Field(
        1000,
        description="Default maximum number of objects returned by /debug/list",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class JanitorSettings(BaseSettings):
    """Cleanup sweep configuration."""

    enabled: bool = Field(
        False,
        description="Run the periodic janitor inside the API process",
    )
    interval_seconds: int = Field(
        900,
        description="Seconds between periodic janitor runs",
        ge=1,
    )
    object_retention_seconds: int = Field(
        1800,
        description="Objects older than this are eligible for deletion",
        ge=0,
    )
    counter_grace_seconds: int = Field(
        1800,
        description="Counters expired for longer than this are purged",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="JANITOR_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate log file at this size (0 disables rotation)")
    backup_count: int = Field(5, description="Number of rotated log files kept")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    counter_store: CounterStoreSettings = Field(default_factory=CounterStoreSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    janitor: JanitorSettings = Field(default_factory=JanitorSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items."""

    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
