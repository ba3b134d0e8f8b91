"""Application settings loaded from environment variables via pydantic-settings.

Every field can be overridden with a ``WAXSYNC_`` prefixed environment variable.
Nested groups use a double underscore, e.g.::

    WAXSYNC_DATABASE__URL=postgresql+asyncpg://user:pw@db/waxsync
    WAXSYNC_CATALOG_IMPORT__BATCH_SIZE=5000
    WAXSYNC_OBSERVABILITY__LOG_JSON_FORMAT=true
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./waxsync.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # Pool settings only apply to PostgreSQL, SQLite has no connection pool
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


# Hey future me - these knobs are the whole performance story of the import!
# batch_size bounds memory AND transaction size per upsert chunk. The monthly
# releases dump is tens of millions of rows, so don't crank it past ~5000 or a
# single failed chunk throws away too much work.
# association_batch_size is capped at 500 because each association statement
# builds its candidate rows as a compound SELECT and SQLite refuses more than
# 500 terms per compound statement.
class CatalogImportSettings(BaseModel):
    """Settings for the bulk catalog synchronization pipeline."""

    dump_dir: Path = Path("./data/dumps")
    batch_size: int = Field(default=2000, ge=1, le=50_000)
    association_batch_size: int = Field(default=400, ge=1, le=500)
    max_bind_params: int = Field(default=30_000, ge=100)
    db_operation_timeout_seconds: float = Field(default=120.0, gt=0)
    stale_run_timeout_minutes: int = Field(default=60, ge=1)
    vinyl_only: bool = True
    verify_checksums: bool = True
    resume_completed_files: bool = True
    error_sample_limit: int = Field(default=20, ge=0)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


class Settings(BaseSettings):
    """waxsync application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="WAXSYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "waxsync"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    catalog_import: CatalogImportSettings = Field(
        default_factory=CatalogImportSettings
    )
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
