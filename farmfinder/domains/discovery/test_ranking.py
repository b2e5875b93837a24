"""
Tests for result ranking.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .models import Product, ProductMatch
from .ranking import SortKey, parse_sort_key, rank


def _match(product_id: str, distance_km: float | None = None, **fields: object) -> ProductMatch:
    return ProductMatch(
        product=Product(id=product_id, name=product_id, seller_id="s1", **fields),
        distance_km=distance_km,
    )


def _ids(matches: list[ProductMatch]) -> list[str]:
    return [m.product.id for m in matches]


# --- parse_sort_key Tests ---


def test_parse_sort_key_known_values() -> None:
    """Test raw strings map to SortKey members."""
    assert parse_sort_key("distance") is SortKey.DISTANCE
    assert parse_sort_key(" PRICE_LOW ") is SortKey.PRICE_LOW
    assert parse_sort_key(SortKey.NEWEST) is SortKey.NEWEST


def test_parse_sort_key_unknown_and_missing() -> None:
    """Test unknown or missing keys map to None."""
    assert parse_sort_key(None) is None
    assert parse_sort_key("popularity") is None


# --- rank Tests ---


def test_rank_by_distance_nearest_first() -> None:
    """Test distance sort ascending with missing distances last."""
    matches = [
        _match("far", 12.0),
        _match("unknown", None),
        _match("near", 1.5),
        _match("mid", 6.0),
    ]
    assert _ids(rank(matches, "distance")) == ["near", "mid", "far", "unknown"]


def test_rank_by_price_both_directions() -> None:
    """Test price_low and price_high orderings."""
    matches = [
        _match("mid", price=Decimal("5.00")),
        _match("cheap", price=Decimal("1.50")),
        _match("dear", price=Decimal("12.00")),
    ]
    assert _ids(rank(matches, "price_low")) == ["cheap", "mid", "dear"]
    assert _ids(rank(matches, "price_high")) == ["dear", "mid", "cheap"]


def test_rank_by_rating_descending() -> None:
    """Test rating sort puts the best rated first."""
    matches = [_match("ok", rating=3.9), _match("top", rating=4.8), _match("low", rating=2.0)]
    assert _ids(rank(matches, "rating")) == ["top", "ok", "low"]


def test_rank_by_newest_handles_naive_and_missing() -> None:
    """Test newest sort mixes naive and aware timestamps, missing last."""
    matches = [
        _match("old", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        _match("undated"),
        _match("new", created_at=datetime(2024, 6, 1)),
    ]
    assert _ids(rank(matches, "newest")) == ["new", "old", "undated"]


def test_rank_by_availability_most_stock_first() -> None:
    """Test availability sort orders by stock descending."""
    matches = [_match("few", stock=2), _match("many", stock=40), _match("none", stock=0)]
    assert _ids(rank(matches, "availability")) == ["many", "few", "none"]


def test_rank_is_stable_for_ties() -> None:
    """Test equal keys keep their incoming order."""
    matches = [
        _match("first", price=Decimal("3")),
        _match("second", price=Decimal("3")),
        _match("third", price=Decimal("3")),
    ]
    assert _ids(rank(matches, "price_low")) == ["first", "second", "third"]
    assert _ids(rank(matches, "price_high")) == ["first", "second", "third"]


def test_rank_unknown_key_keeps_order() -> None:
    """Test unknown and missing sort keys are an identity ordering."""
    matches = [_match("b"), _match("a"), _match("c")]
    assert _ids(rank(matches, "popularity")) == ["b", "a", "c"]
    assert _ids(rank(matches, None)) == ["b", "a", "c"]


def test_rank_returns_new_list() -> None:
    """Test ranking never mutates the input list."""
    matches = [_match("b", 2.0), _match("a", 1.0)]
    ranked = rank(matches, "distance")
    assert _ids(matches) == ["b", "a"]
    assert ranked is not matches
