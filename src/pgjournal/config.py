"""Journal configuration management."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Journal settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="PGJOURNAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    BACKEND: str = Field(default="postgres", description="Storage backend: postgres")
    URI: str = Field(
        default="postgresql://localhost/rbot_journal",
        description="PostgreSQL connection string",
    )
    DROP: bool = Field(
        default=False,
        description="Drop the journal table before creating it (destructive; tests/resets only)",
    )
    CONNECT_TIMEOUT: float = Field(
        default=10.0, description="Seconds to wait when connecting to the database"
    )

    # Queries
    DEFAULT_LIMIT: int = Field(default=100, description="Default page size for find")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Log level for the CLI")

    @field_validator("DEFAULT_LIMIT")
    @classmethod
    def validate_default_limit(cls, v: int) -> int:
        """Validate that the default page size is positive."""
        if v <= 0:
            raise ValueError("DEFAULT_LIMIT must be a positive integer")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown LOG_LEVEL '{v}'")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
