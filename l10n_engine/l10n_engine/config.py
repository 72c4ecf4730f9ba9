"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from l10n_engine.models.commit import MESSAGE_MAX_LENGTH

logger = logging.getLogger(__name__)


class PlatformEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with L10N_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="L10N_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: PlatformEnv = PlatformEnv.DEV
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///.l10n/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Source repositories
    repos_root: Path = Path(".l10n/repos")
    git_timeout_seconds: int = 30
    git_fetch_timeout_seconds: int = 300

    # Background jobs
    max_concurrent_jobs: int = 8

    # Manifest cache
    cache_dir: Path = Path(".l10n/cache")

    # Commits
    message_max_length: int = MESSAGE_MAX_LENGTH

    # Logging
    log_level: str = "INFO"
    structured_logging: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @field_validator("max_concurrent_jobs")
    @classmethod
    def positive_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        return v

    @field_validator("git_timeout_seconds", "git_fetch_timeout_seconds")
    @classmethod
    def positive_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError("git timeouts must be at least 1 second")
        return v

    @field_validator("message_max_length")
    @classmethod
    def message_limit_fits_column(cls, v: int) -> int:
        if not 1 <= v <= MESSAGE_MAX_LENGTH:
            raise ValueError(f"message_max_length must be between 1 and {MESSAGE_MAX_LENGTH}")
        return v


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
