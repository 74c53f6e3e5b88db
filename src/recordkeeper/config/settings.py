"""Application settings loaded from environment variables.

Hey future me - every group below maps to an env prefix! Nested values use a
double underscore, e.g. ``RECORDKEEPER_DATABASE__URL`` or
``RECORDKEEPER_AUDIT__MAX_POSITION``. Settings are read ONCE per process via
get_settings() - tests build their own Settings() instead of mutating the cache.
"""

from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./recordkeeper.db"
    echo: bool = False
    pool_pre_ping: bool = True
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=1800, ge=-1)
    # Create missing tables at startup (dev/tests). Production schemas come from alembic.
    auto_create_tables: bool = False


class AuditSettings(BaseModel):
    """Scope limits for duplicate scans and audits.

    A scan is always bounded by one year. Rows below ``max_position`` never
    reach the aggregate list, so they are not worth reconciling.
    """

    max_position: int = Field(default=40, ge=1)
    main_lists_only: bool = True
    contributors_only: bool = True
    min_year: int = 1900
    max_year: int = 2100

    @model_validator(mode="after")
    def _check_year_bounds(self) -> "AuditSettings":
        if self.min_year > self.max_year:
            raise ValueError("min_year must not be greater than max_year")
        return self


class ReconciliationSettings(BaseModel):
    """Manual album reconciliation settings."""

    fuzzy_matching: bool = False
    fuzzy_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_matches_per_album: int = Field(default=5, ge=1)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="RECORDKEEPER_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "recordkeeper"
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    reconciliation: ReconciliationSettings = Field(
        default_factory=ReconciliationSettings
    )
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
