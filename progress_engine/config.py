"""
Configuration settings for the progress engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///progress_engine.db",
        description="SQLAlchemy connection string for the progress store",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)",
    )
    isolation_level: Literal["SERIALIZABLE", "REPEATABLE READ", "READ COMMITTED"] = Field(
        default="SERIALIZABLE",
        description="Transaction isolation for progress updates",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Summaries
    # ========================================
    summary_reward_limit: int = Field(
        default=10,
        description="Most recent rewards included in a progress summary",
    )
    upcoming_goal_limit: int = Field(
        default=6,
        description="Maximum number of upcoming goals in a summary",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
