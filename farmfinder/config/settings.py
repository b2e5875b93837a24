"""
Settings - Application configuration using Pydantic Settings.

Loads from environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Paths
    data_dir: Path = Path("data")
    db_path: Path = Path("data/farmfinder.db")

    # Search
    default_page_size: int = 20
    default_radius_km: float = 50.0
    # Candidate pool is page_size * factor to leave room for geo/reputation pruning
    candidate_pool_factor: int = 2
    fanout_concurrency: int = 10
    search_timeout_seconds: float = 10.0

    # Autocomplete
    suggestions_limit: int = 10
    suggestion_sample_size: int = 50

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    rate_limit_rpm: int = 60
    slow_request_ms: float = 1000.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
