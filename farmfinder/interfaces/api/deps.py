"""
API Dependencies - Dependency injection for FastAPI routes.

Provides singleton instances of the repository and discovery engine.
"""

from __future__ import annotations

from functools import lru_cache

from farmfinder.adapters.sqlite import SQLiteRepository
from farmfinder.config import get_settings
from farmfinder.domains.discovery import DiscoveryEngine


@lru_cache
def get_sqlite_repository() -> SQLiteRepository:
    """Get SQLite repository singleton."""
    settings = get_settings()
    return SQLiteRepository(settings.db_path)


@lru_cache
def get_discovery_engine() -> DiscoveryEngine:
    """Get discovery engine singleton (the repository serves all three stores)."""
    repo = get_sqlite_repository()
    return DiscoveryEngine.from_settings(repo, repo, repo, get_settings())


async def init_services() -> None:
    """
    Initialize services on startup.

    This should be called from the FastAPI lifespan handler.
    """
    repo = get_sqlite_repository()
    await repo.initialize()


async def cleanup_services() -> None:
    """Cleanup services on shutdown."""
    repo = get_sqlite_repository()
    await repo.close()
