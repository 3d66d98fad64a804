"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
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


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """In-process response cache configuration."""

    max_size: int = Field(
        1000,
        description="Maximum number of cached entries before LRU eviction",
        ge=1,
    )
    default_ttl_ms: int = Field(
        300_000,
        description="Default time-to-live for cache entries in milliseconds",
        ge=1,
    )
    cleanup_interval_ms: int = Field(
        60_000,
        description="Interval of the background expiry/eviction sweep in milliseconds",
        ge=1,
    )
    enable_stats: bool = Field(
        True,
        description="Track hit/miss counters for get_stats()",
    )
    quote_ttl_ms: int = Field(
        60_000,
        description="Time-to-live for cached market quotes in milliseconds",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Fixed-window rate limiting policies, one pair of values per endpoint class."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on rate-limited routes",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers in responses",
    )
    cleanup_interval_ms: int = Field(
        60_000,
        description="Interval for dropping expired windows in milliseconds",
        ge=1,
    )

    api_window_ms: int = Field(15 * 60 * 1000, ge=1, description="Generic API window")
    api_max: int = Field(1000, ge=1, description="Generic API requests per window")
    chat_window_ms: int = Field(60 * 1000, ge=1, description="Chat message window")
    chat_max: int = Field(60, ge=1, description="Chat messages per window")
    market_window_ms: int = Field(60 * 1000, ge=1, description="Market data window")
    market_max: int = Field(100, ge=1, description="Market data requests per window")
    auth_window_ms: int = Field(15 * 60 * 1000, ge=1, description="Authentication window")
    auth_max: int = Field(5, ge=1, description="Authentication attempts per window")

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class MarketDataSettings(BaseSettings):
    """Upstream market data provider configuration."""

    provider: str = Field(
        "alphavantage",
        description="Market data provider name (currently: alphavantage)",
    )
    api_key: str | None = Field(
        None,
        description="API key for the market data provider",
    )
    base_url: str = Field(
        "https://www.alphavantage.co",
        description="Base URL of the market data provider",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Upstream request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="MARKET_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
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
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    market: MarketDataSettings = Field(default_factory=MarketDataSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
