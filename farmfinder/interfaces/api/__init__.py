"""
API Interface - FastAPI REST API for product discovery.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
