"""
Discovery Filters - Client-side pruning stages.

Each stage takes the current list of matches and returns a new list;
none of them reorder except the text filter's stable name-match partition.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .geo import haversine_km
from .models import DeliveryMethod, GeoPoint, ProductMatch, SellerLocation

__all__ = [
    "filter_by_delivery",
    "filter_by_radius",
    "filter_by_rating",
    "filter_by_text",
    "searchable_text",
    "tokenize",
]


def tokenize(text: str | None) -> list[str]:
    """Lower-case whitespace tokenization."""
    return (text or "").lower().split()


def searchable_text(match: ProductMatch) -> str:
    """Concatenate the fields the text filter looks at, lower-cased."""
    product = match.product
    seller_name = product.seller_name or (match.seller.display_name if match.seller else None)
    farm_name = product.farm_name or (match.seller.farm_name if match.seller else None)
    parts = [
        product.name,
        product.description,
        product.category,
        seller_name or "",
        farm_name or "",
        *product.tags,
    ]
    return " ".join(parts).lower()


def filter_by_text(matches: list[ProductMatch], text: str | None) -> list[ProductMatch]:
    """
    Keep matches containing every query token, name matches first.

    Args:
        matches: Current candidates
        text: Free-text query; empty or whitespace-only is a pass-through

    Returns:
        Retained candidates, stably partitioned so that those whose name
        contains at least one token come before the rest
    """
    terms = tokenize(text)
    if not terms:
        return matches

    name_hits: list[ProductMatch] = []
    others: list[ProductMatch] = []
    for match in matches:
        haystack = searchable_text(match)
        if not all(term in haystack for term in terms):
            continue
        name = match.product.name.lower()
        if any(term in name for term in terms):
            name_hits.append(match)
        else:
            others.append(match)

    return name_hits + others


def filter_by_radius(
    matches: list[ProductMatch],
    origin: GeoPoint,
    radius_km: float,
    locations: Mapping[str, SellerLocation],
) -> list[ProductMatch]:
    """
    Attach distance and seller fields, dropping matches outside the radius.

    Matches whose seller has no resolved location are dropped.
    """
    kept: list[ProductMatch] = []
    for match in matches:
        location = locations.get(match.seller_id)
        if location is None:
            continue

        distance = haversine_km(
            origin.lat,
            origin.lng,
            location.position.lat,
            location.position.lng,
        )
        if distance > radius_km:
            continue

        kept.append(match.model_copy(update={"distance_km": distance, "seller": location}))

    return kept


def filter_by_delivery(
    matches: list[ProductMatch],
    methods: Iterable[DeliveryMethod],
) -> list[ProductMatch]:
    """Keep matches offering at least one requested delivery method."""
    requested = set(methods)
    if not requested:
        return matches
    return [m for m in matches if m.product.delivery_options & requested]


def filter_by_rating(
    matches: list[ProductMatch],
    ratings: Mapping[str, float],
    min_rating: float,
) -> list[ProductMatch]:
    """Keep matches whose seller's mean rating meets the floor. Unknown sellers rate 0."""
    if min_rating <= 0:
        return matches
    return [m for m in matches if ratings.get(m.seller_id, 0.0) >= min_rating]
