"""
Configuration - Application settings and error taxonomy.
"""

from .errors import (
    ErrorCode,
    FarmFinderError,
    RetrievalError,
    SearchError,
    SearchTimeoutError,
    StorageError,
)
from .settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Errors
    "ErrorCode",
    "FarmFinderError",
    "SearchError",
    "RetrievalError",
    "SearchTimeoutError",
    "StorageError",
]
