"""
Tests for the client-side filter stages.
"""

from __future__ import annotations

from decimal import Decimal

from .filters import (
    filter_by_delivery,
    filter_by_radius,
    filter_by_rating,
    filter_by_text,
    searchable_text,
    tokenize,
)
from .models import DeliveryMethod, GeoPoint, Product, ProductMatch, SellerLocation

# One degree of latitude in km (haversine, R = 6371)
KM_PER_DEG_LAT = 111.19492664455873

ORIGIN = GeoPoint(lat=52.0, lng=19.0)


def _match(product_id: str, seller_id: str = "seller-1", **fields: object) -> ProductMatch:
    return ProductMatch(
        product=Product(id=product_id, name=fields.pop("name", product_id), seller_id=seller_id, **fields)
    )


def _location(seller_id: str, km_north: float) -> SellerLocation:
    return SellerLocation(
        seller_id=seller_id,
        position=GeoPoint(lat=ORIGIN.lat + km_north / KM_PER_DEG_LAT, lng=ORIGIN.lng),
        display_name=f"{seller_id} name",
        farm_name=f"{seller_id} farm",
    )


# --- Text Filter Tests ---


def test_tokenize_lowercases_and_splits() -> None:
    """Test whitespace tokenization is case-insensitive."""
    assert tokenize("  Fresh   TOMATOES ") == ["fresh", "tomatoes"]
    assert tokenize("") == []
    assert tokenize(None) == []


def test_searchable_text_covers_all_fields() -> None:
    """Test the haystack includes name, description, category, seller and tags."""
    match = _match(
        "p1",
        name="Carrots",
        description="Crunchy",
        category="Vegetables",
        seller_name="Anna",
        farm_name="Sunny Acres",
        tags=["bio", "local"],
    )
    haystack = searchable_text(match)
    for word in ("carrots", "crunchy", "vegetables", "anna", "sunny acres", "bio", "local"):
        assert word in haystack


def test_text_filter_empty_query_passes_everything() -> None:
    """Test empty and whitespace-only queries are a pass-through."""
    matches = [_match("a"), _match("b")]
    assert filter_by_text(matches, "") == matches
    assert filter_by_text(matches, "   ") == matches


def test_text_filter_requires_every_token() -> None:
    """Test AND semantics over query tokens."""
    matches = [
        _match("p1", name="Red Tomatoes", description="Juicy"),
        _match("p2", name="Red Apples", description="Sweet"),
    ]
    result = filter_by_text(matches, "red tomatoes")
    assert [m.product.id for m in result] == ["p1"]


def test_text_filter_is_case_insensitive() -> None:
    """Test upper-case query matches lower-case fields."""
    matches = [_match("p1", name="honey")]
    assert len(filter_by_text(matches, "HONEY")) == 1


def test_text_filter_name_matches_come_first() -> None:
    """Test a name match outranks a description-only match."""
    fresh = _match("fresh", name="Fresh Carrots", description="Grown with organic methods")
    organic = _match("organic", name="Organic Carrots", description="Crunchy")

    result = filter_by_text([fresh, organic], "organic")

    assert [m.product.id for m in result] == ["organic", "fresh"]


def test_text_filter_partition_is_stable() -> None:
    """Test relative order is kept inside each partition."""
    matches = [
        _match("d1", name="Box", description="apple mix"),
        _match("n1", name="Apple A"),
        _match("d2", name="Crate", description="apple crate"),
        _match("n2", name="Apple B"),
    ]
    result = filter_by_text(matches, "apple")
    assert [m.product.id for m in result] == ["n1", "n2", "d1", "d2"]


def test_text_filter_matches_seller_location_fields() -> None:
    """Test seller names from a resolved location are searchable."""
    match = _match("p1", name="Eggs").model_copy(update={"seller": _location("s1", 1.0)})
    assert filter_by_text([match], "s1 farm") == [match]


# --- Radius Filter Tests ---


def test_radius_filter_drops_far_sellers() -> None:
    """Test products of sellers beyond the radius are removed."""
    matches = [_match("near", seller_id="x"), _match("far", seller_id="y")]
    locations = {"x": _location("x", 5.0), "y": _location("y", 15.0)}

    result = filter_by_radius(matches, ORIGIN, 10.0, locations)

    assert [m.product.id for m in result] == ["near"]
    assert abs(result[0].distance_km - 5.0) < 0.01
    assert result[0].seller is not None
    assert result[0].seller.farm_name == "x farm"


def test_radius_filter_keeps_boundary() -> None:
    """Test a seller on the radius boundary is kept."""
    locations = {"x": _location("x", 5.0)}
    result = filter_by_radius([_match("p", seller_id="x")], ORIGIN, 5.0 + 1e-9, locations)
    assert len(result) == 1


def test_radius_filter_drops_unresolved_sellers() -> None:
    """Test products whose seller has no location are removed."""
    result = filter_by_radius([_match("p", seller_id="ghost")], ORIGIN, 100.0, {})
    assert result == []


def test_radius_filter_is_monotonic() -> None:
    """Test a larger radius never returns fewer matches."""
    matches = [_match(f"p{i}", seller_id=f"s{i}") for i in range(6)]
    locations = {f"s{i}": _location(f"s{i}", i * 4.0) for i in range(6)}

    previous = 0
    for radius in (1.0, 5.0, 10.0, 15.0, 50.0):
        kept = len(filter_by_radius(matches, ORIGIN, radius, locations))
        assert kept >= previous
        previous = kept


def test_radius_filter_does_not_mutate_input() -> None:
    """Test the input matches keep no distance."""
    source = _match("p", seller_id="x")
    filter_by_radius([source], ORIGIN, 10.0, {"x": _location("x", 1.0)})
    assert source.distance_km is None
    assert source.seller is None


# --- Delivery Filter Tests ---


def test_delivery_filter_any_overlap() -> None:
    """Test a product passes when it offers at least one requested method."""
    pickup = _match("pickup", delivery_options={DeliveryMethod.PICKUP})
    both = _match(
        "both", delivery_options={DeliveryMethod.PICKUP, DeliveryMethod.HOME_DELIVERY}
    )
    none = _match("none")

    result = filter_by_delivery([pickup, both, none], {DeliveryMethod.HOME_DELIVERY})

    assert [m.product.id for m in result] == ["both"]


def test_delivery_filter_empty_request_passes_everything() -> None:
    """Test no requested method means no filtering."""
    matches = [_match("a"), _match("b")]
    assert filter_by_delivery(matches, set()) == matches


# --- Rating Filter Tests ---


def test_rating_filter_applies_floor() -> None:
    """Test sellers below the floor are removed, equal passes."""
    matches = [
        _match("a", seller_id="good"),
        _match("b", seller_id="edge"),
        _match("c", seller_id="poor"),
    ]
    ratings = {"good": 4.6, "edge": 4.0, "poor": 3.5}

    result = filter_by_rating(matches, ratings, 4.0)

    assert [m.product.id for m in result] == ["a", "b"]


def test_rating_filter_unknown_seller_rates_zero() -> None:
    """Test a seller missing from the ratings map is excluded by any positive floor."""
    assert filter_by_rating([_match("a", seller_id="new")], {}, 0.5) == []


def test_rating_filter_zero_floor_is_pass_through() -> None:
    """Test a zero floor keeps everything."""
    matches = [_match("a", price=Decimal("1"))]
    assert filter_by_rating(matches, {}, 0.0) == matches
