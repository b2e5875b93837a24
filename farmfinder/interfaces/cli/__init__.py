"""
CLI Interface - Command-line tools for FarmFinder.

Provides commands for:
- Product search and autocomplete
- Nearby seller listing
- Database setup and data loading
"""

from .main import app, main

__all__ = ["app", "main"]
