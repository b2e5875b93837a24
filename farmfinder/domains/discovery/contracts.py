"""
Discovery Contracts - Interfaces for the discovery domain and its stores.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import (
    CandidateCriteria,
    FilterOptions,
    Product,
    SearchQuery,
    SearchResult,
    Seller,
)


@runtime_checkable
class ProductStore(Protocol):
    """Contract for product storage."""

    async def find_candidates(
        self,
        criteria: CandidateCriteria,
        limit: int,
    ) -> list[Product]:
        """Return up to `limit` active products matching the store-level predicates."""
        ...

    async def sample_active(self, limit: int) -> list[Product]:
        """Return a small sample of active products (autocomplete source)."""
        ...

    async def facets(self) -> FilterOptions:
        """Return categories, delivery methods and price statistics of active products."""
        ...


@runtime_checkable
class SellerStore(Protocol):
    """Contract for seller profile lookups."""

    async def get_seller(self, seller_id: str) -> Seller | None:
        """Point lookup by seller id."""
        ...

    async def list_sellers(self, verified_only: bool = False) -> list[Seller]:
        """List all sellers, optionally verified ones only."""
        ...


@runtime_checkable
class ReviewStore(Protocol):
    """Contract for review aggregation input."""

    async def published_ratings(self, seller_id: str) -> list[float]:
        """Ratings of all published reviews for a seller."""
        ...


@runtime_checkable
class ProductSearch(Protocol):
    """Contract for discovery implementations."""

    async def search(self, query: SearchQuery) -> SearchResult:
        """Execute search and return the assembled result."""
        ...
