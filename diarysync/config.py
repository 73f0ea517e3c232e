"""Configuration settings for the diary sync backend."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Store
    store_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_secret_key: str | None = None
    diaries_table: str = "diaries"
    store_timeout_seconds: float = 10.0
    max_write_attempts: int = 3  # Optimistic write retries per sync item

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Merge policy: whose createdAt/updatedAt/sleep window survives a conflict merge
    merge_temporal_policy: Literal["server", "client"] = "server"

    # App
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
