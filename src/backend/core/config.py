"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "LiquidVote"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Server secret mixed into every one-way hash (rights to vote, voter tokens, checksums)
    HASH_SECRET: str = ""  # Required - loaded from environment

    # Database - PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "liquidvote"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "liquidvote"
    DATABASE_URL: str | None = None  # Full URL override, e.g. for CI databases

    @field_validator("HASH_SECRET")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @property
    def POSTGRES_URL(self) -> str:
        """Construct PostgreSQL connection URL, unless DATABASE_URL overrides it."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Rights to vote and voter tokens
    RIGHT_TO_VOTE_EXPIRATION_HOURS: int = 24 * 365
    VOTER_TOKEN_EXPIRATION_HOURS: int = 1

    # Poll Configuration
    DURATION_OF_VOTING_PHASE_DAYS: int = 14  # Voting ends n days after start, at midnight UTC

    # Delegation graph walks are bounded by acyclicity; this only guards against corrupt data
    MAX_DELEGATION_CHAIN_LENGTH: int = 10_000

    # Ranked pairs: whether candidates missing from a ballot lose against all ranked ones
    TALLY_RANK_UNLISTED_LAST: bool = False

    # Background jobs
    ENABLE_BACKGROUND_JOBS: bool = True
    VOTER_TOKEN_CLEANUP_INTERVAL_MINUTES: int = 60
    POLL_FINISH_CHECK_INTERVAL_MINUTES: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
