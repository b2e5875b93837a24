"""
Ranking - Orders surviving matches by a caller-selected key.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from .models import ProductMatch

logger = logging.getLogger(__name__)

__all__ = ["SortKey", "parse_sort_key", "rank"]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class SortKey(str, Enum):
    """Supported ranking keys."""

    DISTANCE = "distance"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    RATING = "rating"
    NEWEST = "newest"
    AVAILABILITY = "availability"


def parse_sort_key(value: str | SortKey | None) -> SortKey | None:
    """Map a raw sort key to SortKey, or None when missing or unknown."""
    if value is None or isinstance(value, SortKey):
        return value
    try:
        return SortKey(value.strip().lower())
    except ValueError:
        logger.debug("Unknown sort key %r, keeping retrieval order", value)
        return None


def _created_at(match: ProductMatch) -> datetime:
    created = match.product.created_at
    if created is None:
        return _EPOCH
    # Naive timestamps are taken as UTC so they compare with aware ones
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def rank(matches: list[ProductMatch], sort_by: str | SortKey | None) -> list[ProductMatch]:
    """
    Order matches by the requested key.

    All sorts are stable. Matches without a distance sort after those with
    one, in their existing order. Unknown or missing keys return the input
    order unchanged.

    Args:
        matches: Filtered matches
        sort_by: One of SortKey values (string or enum)

    Returns:
        New list in ranked order
    """
    key = parse_sort_key(sort_by)

    if key is SortKey.DISTANCE:
        return sorted(
            matches,
            key=lambda m: (m.distance_km is None, m.distance_km or 0.0),
        )
    if key is SortKey.PRICE_LOW:
        return sorted(matches, key=lambda m: m.product.price)
    if key is SortKey.PRICE_HIGH:
        return sorted(matches, key=lambda m: m.product.price, reverse=True)
    if key is SortKey.RATING:
        return sorted(matches, key=lambda m: m.product.rating, reverse=True)
    if key is SortKey.NEWEST:
        return sorted(matches, key=_created_at, reverse=True)
    if key is SortKey.AVAILABILITY:
        return sorted(matches, key=lambda m: m.product.stock, reverse=True)

    return list(matches)
