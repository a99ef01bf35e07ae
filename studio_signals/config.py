"""
Configuration settings for Studio Signals.

Uses Pydantic Settings to load environment variables for database connections,
logging, the local caller identity, and the defaults applied when an owner's
automation settings row is created on first refresh.
"""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Optional
from uuid import UUID

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("studio_signals", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(30_000, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, ge=0, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, ge=1, alias="DB_POOL_MAX_SIZE")
    # Time zone the "calendar day" of the daily guard and rule windows is taken in;
    # unset keeps the database session default.
    studio_timezone: Optional[str] = Field(None, alias="STUDIO_TIMEZONE")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Caller identity used by the CLI in place of the identity provider
    studio_owner_id: Optional[UUID] = Field(None, alias="STUDIO_OWNER_ID")

    # Defaults for a lazily created automation settings row
    default_no_show_threshold: int = Field(2, ge=1, alias="AUTOMATION_NO_SHOW_THRESHOLD")
    default_pending_lessons_threshold: int = Field(
        4, ge=1, alias="AUTOMATION_PENDING_LESSONS_THRESHOLD"
    )
    default_attendance_drop_ratio: Decimal = Field(
        Decimal("0.50"), gt=0, le=1, decimal_places=2, alias="AUTOMATION_ATTENDANCE_DROP_RATIO"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
