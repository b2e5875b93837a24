"""
Seller Resolvers - Per-seller fan-out lookups.

Both resolvers collect distinct seller ids, issue one lookup per id
concurrently under a semaphore, and treat a failed lookup as a data gap
for that seller instead of failing the whole search.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, TypeVar

from .models import SellerLocation

if TYPE_CHECKING:
    from .contracts import ReviewStore, SellerStore

logger = logging.getLogger(__name__)

__all__ = ["SellerLocationResolver", "SellerRatingAggregator", "gather_per_seller"]

T = TypeVar("T")


async def gather_per_seller(
    seller_ids: Iterable[str],
    lookup: Callable[[str], Awaitable[T]],
    max_concurrent: int = 10,
    label: str = "lookup",
) -> dict[str, T]:
    """
    Run one lookup per distinct seller id with bounded concurrency.

    Args:
        seller_ids: Seller ids (duplicates are collapsed)
        lookup: Coroutine function called once per id
        max_concurrent: Maximum lookups in flight
        label: Name used in failure logs

    Returns:
        Mapping of seller id to lookup result, without the ids that failed
    """
    unique_ids = list(dict.fromkeys(seller_ids))
    if not unique_ids:
        return {}

    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def lookup_with_limit(seller_id: str) -> T:
        async with semaphore:
            return await lookup(seller_id)

    tasks = [lookup_with_limit(seller_id) for seller_id in unique_ids]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    resolved: dict[str, T] = {}
    for seller_id, result in zip(unique_ids, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.warning("Seller %s failed for %s: %s", label, seller_id, result)
            continue
        resolved[seller_id] = result

    return resolved


class SellerLocationResolver:
    """
    Resolves seller ids to validated positions and display fields.

    Nothing is cached; every call reads the seller store.

    Example:
        >>> resolver = SellerLocationResolver(seller_store)
        >>> locations = await resolver.resolve({"farmer-1", "farmer-2"})
    """

    def __init__(self, seller_store: SellerStore, max_concurrent: int = 10) -> None:
        """
        Initialize resolver.

        Args:
            seller_store: Seller point-lookup store
            max_concurrent: Maximum concurrent seller lookups
        """
        self._sellers = seller_store
        self._max_concurrent = max_concurrent

    async def resolve(self, seller_ids: Iterable[str]) -> dict[str, SellerLocation]:
        """
        Resolve seller positions.

        Sellers that do not exist, have no position or have an out-of-range
        position are omitted from the mapping.
        """
        sellers = await gather_per_seller(
            seller_ids,
            self._sellers.get_seller,
            max_concurrent=self._max_concurrent,
            label="location lookup",
        )

        locations: dict[str, SellerLocation] = {}
        for seller_id, seller in sellers.items():
            if seller is None:
                logger.debug("Seller %s not found", seller_id)
                continue
            if seller.position is None or not seller.position.is_valid:
                logger.warning("Seller %s has no usable position, excluded from geo search", seller_id)
                continue
            locations[seller_id] = SellerLocation(
                seller_id=seller_id,
                position=seller.position,
                display_name=seller.display_name,
                farm_name=seller.farm_name or seller.display_name,
                verified=seller.verified,
                address=seller.address,
            )

        return locations


class SellerRatingAggregator:
    """Computes the mean published review rating per seller."""

    def __init__(self, review_store: ReviewStore, max_concurrent: int = 10) -> None:
        self._reviews = review_store
        self._max_concurrent = max_concurrent

    async def mean_ratings(self, seller_ids: Iterable[str]) -> dict[str, float]:
        """
        Mean rating per seller, not rounded.

        Sellers with no published reviews, or whose lookup failed, rate 0.0.
        """
        unique_ids = list(dict.fromkeys(seller_ids))
        ratings = await gather_per_seller(
            unique_ids,
            self._reviews.published_ratings,
            max_concurrent=self._max_concurrent,
            label="rating aggregation",
        )

        means: dict[str, float] = {}
        for seller_id in unique_ids:
            values = ratings.get(seller_id) or []
            means[seller_id] = sum(values) / len(values) if values else 0.0
        return means
