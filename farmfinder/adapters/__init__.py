"""
Adapters - External service integrations.

All store access is wrapped here to isolate domains from driver changes.
"""

from .sqlite import SQLiteRepository

__all__ = [
    "SQLiteRepository",
]
