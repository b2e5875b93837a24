"""
Discovery Engine - Location-aware product search pipeline.

Stages:
- Candidate retrieval (store-level predicates, oversized pool)
- Text filter (AND over tokens, name matches first)
- Geo filter (one seller lookup per distinct seller, haversine radius)
- Delivery-option filter
- Reputation filter (mean published rating per distinct seller)
- Ranking and pagination
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from farmfinder.config.errors import RetrievalError, SearchError, SearchTimeoutError

from .contracts import ProductSearch
from .filters import filter_by_delivery, filter_by_radius, filter_by_rating, filter_by_text
from .geo import haversine_km
from .models import (
    Availability,
    CandidateCriteria,
    FilterOptions,
    GeoPoint,
    Product,
    ProductMatch,
    ProductStatus,
    SearchQuery,
    SearchResult,
    SellerSummary,
    Suggestion,
    SuggestionKind,
)
from .pagination import assemble_result
from .ranking import rank
from .resolvers import SellerLocationResolver, SellerRatingAggregator

if TYPE_CHECKING:
    from farmfinder.config.settings import Settings

    from .contracts import ProductStore, ReviewStore, SellerStore

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_CATEGORIES", "DiscoveryEngine"]

DEFAULT_CATEGORIES = (
    "Vegetables",
    "Fruits",
    "Herbs",
    "Grains",
    "Dairy",
    "Meat",
    "Eggs",
    "Honey",
    "Preserved Foods",
)


class DiscoveryEngine(ProductSearch):
    """
    Product discovery over injected product, seller and review stores.

    Example:
        >>> engine = DiscoveryEngine(repo, repo, repo)
        >>> result = await engine.search(
        ...     SearchQuery(text="tomato", position=GeoPoint(lat=52.0, lng=19.0), radius_km=10)
        ... )
    """

    def __init__(
        self,
        product_store: ProductStore,
        seller_store: SellerStore,
        review_store: ReviewStore,
        default_radius_km: float = 50.0,
        candidate_pool_factor: int = 2,
        max_concurrent: int = 10,
        timeout_seconds: float = 10.0,
        suggestion_sample_size: int = 50,
        suggestions_limit: int = 10,
    ) -> None:
        """
        Initialize discovery engine.

        Args:
            product_store: Product candidate store
            seller_store: Seller point-lookup store
            review_store: Published review ratings store
            default_radius_km: Radius used when only a position is given
            candidate_pool_factor: Pool size multiplier over page size
            max_concurrent: Concurrency cap for per-seller fan-out
            timeout_seconds: Default deadline for a whole search
            suggestion_sample_size: Products scanned for autocomplete
            suggestions_limit: Default maximum autocomplete entries
        """
        self._products = product_store
        self._sellers = seller_store
        self._default_radius_km = default_radius_km
        self._pool_factor = max(1, candidate_pool_factor)
        self._timeout = timeout_seconds
        self._sample_size = suggestion_sample_size
        self._suggestions_limit = suggestions_limit

        self._locations = SellerLocationResolver(seller_store, max_concurrent=max_concurrent)
        self._ratings = SellerRatingAggregator(review_store, max_concurrent=max_concurrent)

    @classmethod
    def from_settings(
        cls,
        product_store: ProductStore,
        seller_store: SellerStore,
        review_store: ReviewStore,
        settings: Settings,
    ) -> DiscoveryEngine:
        """Build an engine using the search section of the application settings."""
        return cls(
            product_store,
            seller_store,
            review_store,
            default_radius_km=settings.default_radius_km,
            candidate_pool_factor=settings.candidate_pool_factor,
            max_concurrent=settings.fanout_concurrency,
            timeout_seconds=settings.search_timeout_seconds,
            suggestion_sample_size=settings.suggestion_sample_size,
            suggestions_limit=settings.suggestions_limit,
        )

    async def search(self, query: SearchQuery) -> SearchResult:
        """
        Execute the discovery pipeline.

        Args:
            query: Search parameters

        Returns:
            Ranked, paginated result with the distinct seller list

        Raises:
            SearchError: Geography-dependent behavior requested without a position
            RetrievalError: Candidate retrieval failed
            SearchTimeoutError: The pipeline exceeded its deadline
        """
        if query.requires_position and query.position is None:
            raise SearchError(
                "A position is required for radius filtering or distance sorting",
                {"radius_km": query.radius_km, "sort_by": query.sort_by},
            )

        started_at = datetime.now(timezone.utc)
        timeout = query.timeout_seconds or self._timeout

        try:
            return await asyncio.wait_for(self._run(query, started_at), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Search timed out after %.2fs: text='%s'", timeout, query.text[:50])
            raise SearchTimeoutError(
                f"Search did not complete within {timeout:g}s",
                {"timeout_seconds": timeout},
            ) from exc

    async def _run(self, query: SearchQuery, started_at: datetime) -> SearchResult:
        """Run all stages for one query."""
        criteria = CandidateCriteria.from_query(query, started_at.month)
        pool_size = (query.offset + query.page_size) * self._pool_factor
        candidates = await self._retrieve(criteria, pool_size)

        # Store contract already applies these; stores on an older schema may skip them
        matches = [
            ProductMatch(product=p)
            for p in candidates
            if p.status is ProductStatus.ACTIVE
            and (
                criteria.in_season_month is None
                or p.is_in_season(criteria.in_season_month)
            )
        ]
        candidate_count = len(matches)

        matches = filter_by_text(matches, query.text)
        after_text = len(matches)

        if query.position is not None:
            radius = query.radius_km if query.radius_km is not None else self._default_radius_km
            matches = await self._apply_geo_filter(matches, query.position, radius)
        after_geo = len(matches)

        matches = filter_by_delivery(matches, query.delivery_methods)

        if query.min_seller_rating > 0:
            matches = await self._apply_reputation_filter(matches, query.min_seller_rating)

        ranked = rank(matches, query.sort_by)

        logger.info(
            "Discovery search: text='%s' candidates=%d text=%d geo=%d final=%d sort=%s",
            query.text[:50],
            candidate_count,
            after_text,
            after_geo,
            len(ranked),
            query.sort_by,
        )

        return assemble_result(
            ranked,
            page_size=query.page_size,
            started_at=started_at,
            offset=query.offset,
            candidate_count=candidate_count,
            filters_applied=_has_filters(query),
        )

    async def _retrieve(self, criteria: CandidateCriteria, limit: int) -> list[Product]:
        """Fetch the candidate pool, turning store failures into RetrievalError."""
        try:
            return await self._products.find_candidates(criteria, limit)
        except RetrievalError:
            raise
        except Exception as exc:
            logger.error("Candidate retrieval failed: %s", exc)
            raise RetrievalError(
                "Product candidates could not be retrieved",
                {"stage": "retrieve", "limit": limit},
            ) from exc

    async def _apply_geo_filter(
        self,
        matches: list[ProductMatch],
        origin: GeoPoint,
        radius_km: float,
    ) -> list[ProductMatch]:
        """Resolve distinct sellers once, then prune by radius."""
        if not matches:
            return matches
        locations = await self._locations.resolve(m.seller_id for m in matches)
        return filter_by_radius(matches, origin, radius_km, locations)

    async def _apply_reputation_filter(
        self,
        matches: list[ProductMatch],
        min_rating: float,
    ) -> list[ProductMatch]:
        """Aggregate ratings for distinct sellers, then prune by the floor."""
        if not matches:
            return matches
        ratings = await self._ratings.mean_ratings(m.seller_id for m in matches)
        return filter_by_rating(matches, ratings, min_rating)

    async def suggestions(
        self,
        partial_text: str,
        limit: int | None = None,
    ) -> list[Suggestion]:
        """
        Autocomplete entries for a partial query.

        Scans a small sample of active products (names, categories, tags)
        plus the built-in category list. Prefix matches come before
        substring matches.

        Args:
            partial_text: What the buyer has typed so far (two characters minimum)
            limit: Maximum entries (defaults to the configured limit)

        Returns:
            Suggestions, products first, then categories, then tags
        """
        needle = (partial_text or "").strip().lower()
        if len(needle) < 2:
            return []

        max_entries = self._suggestions_limit if limit is None else limit

        try:
            sample = await self._products.sample_active(self._sample_size)
        except Exception as exc:
            raise RetrievalError(
                "Suggestion sample could not be loaded",
                {"stage": "suggestions"},
            ) from exc

        entries: list[Suggestion] = []
        seen: set[tuple[SuggestionKind, str]] = set()

        def add(value: str | None, kind: SuggestionKind) -> None:
            if not value:
                return
            key = (kind, value.lower())
            if key in seen or needle not in key[1]:
                return
            seen.add(key)
            entries.append(Suggestion(text=value, kind=kind))

        for product in sample:
            add(product.name, SuggestionKind.PRODUCT)
        for category in (*DEFAULT_CATEGORIES, *(p.category for p in sample)):
            add(category, SuggestionKind.CATEGORY)
        for product in sample:
            for tag in product.tags:
                add(tag, SuggestionKind.TAG)

        entries.sort(key=lambda s: not s.text.lower().startswith(needle))
        return entries[:max_entries]

    async def sellers_in_radius(
        self,
        position: GeoPoint,
        radius_km: float | None = None,
        verified_only: bool = False,
    ) -> list[SellerSummary]:
        """
        Sellers within a radius, nearest first.

        Sellers without a usable position are skipped.

        Raises:
            SearchError: Invalid position or radius
            RetrievalError: Seller listing failed
        """
        if not position.is_valid:
            raise SearchError("Position is out of range", {"lat": position.lat, "lng": position.lng})
        radius = radius_km if radius_km is not None else self._default_radius_km
        if radius <= 0:
            raise SearchError("Radius must be positive", {"radius_km": radius})

        try:
            sellers = await self._sellers.list_sellers(verified_only=verified_only)
        except Exception as exc:
            raise RetrievalError("Sellers could not be listed", {"stage": "sellers"}) from exc

        nearby: list[SellerSummary] = []
        for seller in sellers:
            if seller.position is None or not seller.position.is_valid:
                continue
            distance = haversine_km(
                position.lat, position.lng, seller.position.lat, seller.position.lng
            )
            if distance <= radius:
                nearby.append(
                    SellerSummary(
                        id=seller.id,
                        display_name=seller.display_name,
                        farm_name=seller.farm_name or seller.display_name,
                        verified=seller.verified,
                        position=seller.position,
                        distance_km=distance,
                    )
                )

        nearby.sort(key=lambda s: s.distance_km or 0.0)
        return nearby

    async def filter_options(self) -> FilterOptions:
        """Available categories, delivery methods and price range of active listings."""
        try:
            return await self._products.facets()
        except Exception as exc:
            raise RetrievalError("Filter options could not be loaded", {"stage": "facets"}) from exc


def _has_filters(query: SearchQuery) -> bool:
    """Whether the query narrows anything beyond status=active."""
    return any(
        (
            query.text.strip(),
            query.position is not None,
            query.categories,
            query.min_price is not None,
            query.max_price is not None,
            query.availability is not Availability.ALL,
            query.organic,
            query.in_season,
            query.freshness is not None,
            query.delivery_methods,
            query.min_seller_rating > 0,
            query.verified_only,
        )
    )
