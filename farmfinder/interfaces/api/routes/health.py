"""
Health Routes - System health and status endpoints.
"""

from typing import Any

from fastapi import APIRouter

from farmfinder import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": "farmfinder"}


@router.get("/api")
async def api_info() -> dict[str, Any]:
    """API info endpoint."""
    return {
        "name": "FarmFinder API",
        "version": __version__,
        "description": "Location-aware farm product discovery",
        "docs": "/docs",
    }
