"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HostLimits(BaseSettings):
    """Concurrency caps for outbound calls, per upstream host family."""

    model_config = SettingsConfigDict(env_prefix="HOST_LIMIT_")

    reddit: int = Field(default=2, ge=1, description="Concurrent requests to reddit.com")
    youtube: int = Field(default=4, ge=1, description="Concurrent requests to youtube.com")
    bluesky: int = Field(default=4, ge=1, description="Concurrent requests to bsky.app / bsky API")
    default: int = Field(default=8, ge=1, description="Concurrent requests to any other host")

    # Sliding-window request budget per host family (requests, period_seconds)
    reddit_requests_per_minute: int = Field(default=30, ge=1)
    default_requests_per_minute: int = Field(default=120, ge=1)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./maifead.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Scheduler
    fetch_interval_minutes: int = Field(
        default=15,
        ge=1,
        description="Interval for refreshing every source",
    )
    retention_hour: int = Field(default=2, ge=0, le=23, description="Nightly sweep hour (UTC)")
    retention_minute: int = Field(default=0, ge=0, le=59)
    default_retention_days: int = Field(
        default=30,
        ge=0,
        description="Retention for newly created sources (0 = keep forever)",
    )

    # Outbound HTTP
    user_agent: str = Field(default="Maifead/1.0 (+feed reader)")
    http_timeout_seconds: float = Field(default=20.0, gt=0)
    source_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound for refreshing a single source, enrichment included",
    )
    fetch_retries: int = Field(default=3, ge=1, description="Attempts for the primary feed fetch")
    max_concurrent_sources: int = Field(default=4, ge=1)

    # Per-host limits (nested)
    host_limits: HostLimits = Field(default_factory=HostLimits)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
