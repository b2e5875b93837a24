"""SQLite adapter - marketplace stores backed by aiosqlite."""

from .repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
