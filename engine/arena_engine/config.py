"""
Configuration management for the Arena backtest engine.

Uses pydantic-settings for type-safe environment variable handling.
Secrets are loaded from environment variables only - never from files in repo.
"""

from enum import Enum
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class KVBackend(str, Enum):
    """Key/value store backend."""

    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values use SecretStr to prevent accidental logging.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARENA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: AppEnvironment = Field(
        default=AppEnvironment.DEVELOPMENT,
        description="Application environment",
    )

    # Server configuration
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8766, ge=1024, le=65535, description="Server port")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON formatted log lines",
    )

    # Key/value store
    kv_backend: KVBackend = Field(
        default=KVBackend.MEMORY,
        description="Key/value backend: memory (single process) or redis",
    )
    redis_url: SecretStr = Field(
        default=SecretStr("redis://localhost:6379/0"),
        description="Redis connection URL (may embed a password)",
    )
    cache_prefix: str = Field(
        default="backtest:",
        description="Prefix for every key written by the engine",
    )
    memory_cache_max_entries: int = Field(
        default=50_000,
        ge=100,
        description="Capacity of the in-memory key/value backend",
    )

    # TTLs (seconds)
    quote_ttl_s: int = Field(default=3600, ge=60, description="TTL for quote series")
    indicator_ttl_s: int = Field(default=3600, ge=60, description="TTL for indicator series")
    advanced_ttl_s: int = Field(
        default=24 * 3600, ge=60, description="TTL for technical level analyses"
    )
    static_analysis_ttl_s: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="TTL for fundamental and sentiment analyses",
    )
    status_ttl_s: int = Field(default=3600, ge=60, description="TTL for the load status record")
    session_ttl_s: int = Field(
        default=30 * 24 * 3600, ge=3600, description="TTL for sessions and performance history"
    )
    performance_history_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Performance records kept per actor",
    )

    # Simulation
    market_timezone: str = Field(
        default="Asia/Shanghai",
        description="Timezone of the exchange trading calendar",
    )
    default_initial_cash: float = Field(
        default=100000.0,
        gt=0,
        description="Starting cash for actors without an explicit amount",
    )
    max_ticks_per_run: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Upper bound on ticks executed by one auto-run request",
    )

    # Upstream market data
    yahoo_base_url: str = Field(
        default="https://query1.finance.yahoo.com",
        description="Yahoo Finance API base URL",
    )
    yahoo_request_timeout: float = Field(
        default=15.0,
        ge=1,
        le=120,
        description="Upstream request timeout in seconds",
    )
    yahoo_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum retry attempts for upstream requests",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("market_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone is known to zoneinfo."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("cache_prefix")
    @classmethod
    def validate_cache_prefix(cls, v: str) -> str:
        """Keys are namespaced as '<prefix><kind>:<id>'."""
        if not v:
            raise ValueError("cache_prefix must not be empty")
        return v if v.endswith(":") else f"{v}:"

    @property
    def tz(self) -> ZoneInfo:
        """Exchange timezone."""
        return ZoneInfo(self.market_timezone)

    @property
    def uses_redis(self) -> bool:
        """Check if the redis backend is selected."""
        return self.kv_backend == KVBackend.REDIS

    def get_redacted_config(self) -> dict[str, str | int | bool]:
        """
        Get configuration dict with sensitive values redacted.
        Safe for logging and API responses.
        """
        return {
            "env": self.env.value,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "kv_backend": self.kv_backend.value,
            "cache_prefix": self.cache_prefix,
            "market_timezone": self.market_timezone,
            "yahoo_base_url": self.yahoo_base_url,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout application.
    """
    return Settings()


def get_settings_dep() -> Settings:
    """
    Dependency for FastAPI routes to get settings.
    Allows for easy dependency override in tests.
    """
    return get_settings()
