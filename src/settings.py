"""
Application settings for Namayose service.

- Defaults are intended for development use.
- For testing, override via pyproject.toml [tool.pytest.ini_options] or fixtures.
- For production, set environment variables to override fields.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Namayose service configuration."""

    # Record store
    database_url: str = Field(
        default="sqlite+aiosqlite:///./namayose.db",
        description="SQLAlchemy async database URL (aiosqlite locally, asyncpg in production)",
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement",
    )
    database_create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup (development only)",
    )

    # Duplicate detection
    dedup_default_min_score: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Minimum similarity score for a pair to be reported as a candidate",
    )

    # Merge locking
    merge_lock_timeout_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="How long a merge waits for its identity locks before failing with Conflict",
    )
    merge_lock_poll_interval_seconds: float = Field(
        default=0.05,
        gt=0.0,
        description="Delay between lock acquisition attempts",
    )
    merge_lock_ttl_seconds: float = Field(
        default=600.0,
        gt=0.0,
        description="Age after which a lock left behind by a crashed process is purged",
    )

    # Cache invalidation collaborator
    cache_invalidation_url: str | None = Field(
        default=None,
        description="Base URL of the cache invalidation service (disabled when unset)",
    )
    cache_invalidation_timeout: float = Field(
        default=5.0,
        description="Timeout for cache invalidation requests in seconds",
    )

    log_level: str = Field(default="INFO", description="Root log level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def model_post_init(self, __context: object) -> None:
        """Initialize derived settings after model construction."""
        if self.cache_invalidation_url is not None:
            self.cache_invalidation_url = self.cache_invalidation_url.rstrip("/") or None


settings = Settings()
