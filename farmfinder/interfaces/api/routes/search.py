"""
Search Routes - Product discovery, autocomplete and filter options.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from farmfinder.domains.discovery import (
    DiscoveryEngine,
    FilterOptions,
    GeoPoint,
    SearchQuery,
    SearchResult,
    SellerSummary,
    Suggestion,
)
from farmfinder.interfaces.api.deps import get_discovery_engine

router = APIRouter()


class SuggestionsResponse(BaseModel):
    """Autocomplete response."""

    query: str
    suggestions: list[Suggestion]


class SellersResponse(BaseModel):
    """Sellers near a position."""

    sellers: list[SellerSummary]
    total: int


@router.post("", response_model=SearchResult)
async def search(
    request: SearchQuery,
    engine: DiscoveryEngine = Depends(get_discovery_engine),
) -> SearchResult:
    """
    Search products near the buyer.

    - **text**: Free-text query (every word must match)
    - **position** / **radius_km**: Buyer location and search radius
    - **categories**, **min_price**, **max_price**, **organic**, **in_season**,
      **freshness**, **availability**, **verified_only**: Listing filters
    - **delivery_methods**: Keep products offering any of these
    - **min_seller_rating**: Seller reputation floor (0 disables)
    - **sort_by**: distance, price_low, price_high, rating, newest, availability
    - **page_size**: Maximum products returned (1-100)
    - **offset**: Ranked matches to skip; pass the previous page's next_offset

    A distance sort or radius without a position is rejected with 400.
    """
    return await engine.search(request)


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    q: str = Query(..., description="Partial query text"),
    limit: int = Query(default=10, ge=1, le=50),
    engine: DiscoveryEngine = Depends(get_discovery_engine),
) -> SuggestionsResponse:
    """Autocomplete product names, categories and tags."""
    entries = await engine.suggestions(q, limit=limit)
    return SuggestionsResponse(query=q, suggestions=entries)


@router.get("/filters", response_model=FilterOptions)
async def filter_options(
    engine: DiscoveryEngine = Depends(get_discovery_engine),
) -> FilterOptions:
    """Available categories, delivery methods and price range."""
    return await engine.filter_options()


@router.get("/sellers", response_model=SellersResponse)
async def sellers_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float | None = Query(default=None, gt=0),
    verified_only: bool = False,
    engine: DiscoveryEngine = Depends(get_discovery_engine),
) -> SellersResponse:
    """Sellers within a radius of a position, nearest first."""
    sellers = await engine.sellers_in_radius(
        GeoPoint(lat=lat, lng=lng),
        radius_km=radius_km,
        verified_only=verified_only,
    )
    return SellersResponse(sellers=sellers, total=len(sellers))
