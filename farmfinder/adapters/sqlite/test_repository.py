"""Tests for SQLite Repository."""

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import aiosqlite
import pytest

from farmfinder.config.errors import ErrorCode, StorageError
from farmfinder.domains.discovery.engine import DiscoveryEngine
from farmfinder.domains.discovery.models import (
    Availability,
    CandidateCriteria,
    DeliveryMethod,
    Freshness,
    GeoPoint,
    Product,
    ProductStatus,
    Review,
    ReviewStatus,
    SearchQuery,
    Seller,
)

from .repository import SQLiteRepository


@pytest.fixture
async def repo(tmp_path: Path):
    """Create a test repository with temporary database."""
    db_path = tmp_path / "test.db"
    repo = SQLiteRepository(db_path)
    await repo.initialize()
    yield repo
    await repo.close()


@pytest.fixture
async def catalog(repo: SQLiteRepository) -> SQLiteRepository:
    """Repository seeded with a small catalog."""
    await repo.insert_seller(
        Seller(
            id="s1",
            display_name="Anna",
            farm_name="Sunny Acres",
            verified=True,
            position=GeoPoint(lat=52.0, lng=19.0),
        )
    )
    await repo.insert_seller(Seller(id="s2", display_name="Jan"))

    await repo.insert_product(
        Product(
            id="p1",
            name="Strawberries",
            category="Fruits",
            price=Decimal("8.50"),
            stock=10,
            organic=True,
            seasonal_months=[5, 6, 7],
            freshness=Freshness.HARVESTED_TODAY,
            delivery_options={DeliveryMethod.PICKUP, DeliveryMethod.MARKET},
            seller_id="s1",
            seller_verified=True,
            tags=["berries"],
            created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        )
    )
    await repo.insert_product(
        Product(
            id="p2",
            name="Carrots",
            category="Vegetables",
            price=Decimal("2.00"),
            stock=0,
            pre_order_available=True,
            delivery_options={DeliveryMethod.HOME_DELIVERY},
            seller_id="s2",
        )
    )
    await repo.insert_product(
        Product(
            id="p3",
            name="Old Jam",
            category="Preserved Foods",
            price=Decimal("4.00"),
            stock=3,
            seller_id="s2",
            status=ProductStatus.INACTIVE,
        )
    )
    return repo


async def _ids(repo: SQLiteRepository, criteria: CandidateCriteria, limit: int = 50) -> set[str]:
    return {p.id for p in await repo.find_candidates(criteria, limit)}


async def test_initialize_creates_tables(repo: SQLiteRepository):
    """Test that initialize creates all required tables."""
    conn = await repo._get_connection()
    cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    tables = {row[0] for row in await cursor.fetchall()}

    assert {"sellers", "products", "reviews"} <= tables


async def test_product_round_trip(catalog: SQLiteRepository):
    """Test a stored product reads back with list, set and decimal fields."""
    products = await catalog.find_candidates(CandidateCriteria(categories=["Fruits"]), 10)

    assert len(products) == 1
    product = products[0]
    assert product.price == Decimal("8.5")
    assert product.organic is True
    assert product.seasonal_months == [5, 6, 7]
    assert product.delivery_options == {DeliveryMethod.PICKUP, DeliveryMethod.MARKET}
    assert product.tags == ["berries"]
    assert product.created_at == datetime(2024, 6, 1, tzinfo=timezone.utc)


async def test_find_candidates_excludes_inactive(catalog: SQLiteRepository):
    """Test only active products are candidates."""
    assert await _ids(catalog, CandidateCriteria()) == {"p1", "p2"}


async def test_find_candidates_predicates(catalog: SQLiteRepository):
    """Test each store-level predicate."""
    assert await _ids(catalog, CandidateCriteria(min_price=Decimal("5"))) == {"p1"}
    assert await _ids(catalog, CandidateCriteria(max_price=Decimal("5"))) == {"p2"}
    assert await _ids(catalog, CandidateCriteria(organic=True)) == {"p1"}
    assert await _ids(catalog, CandidateCriteria(verified_only=True)) == {"p1"}
    assert await _ids(catalog, CandidateCriteria(freshness=Freshness.HARVESTED_TODAY)) == {"p1"}
    assert await _ids(catalog, CandidateCriteria(availability=Availability.IN_STOCK)) == {"p1"}
    assert await _ids(catalog, CandidateCriteria(availability=Availability.PRE_ORDER)) == {"p2"}


async def test_find_candidates_in_season(catalog: SQLiteRepository):
    """Test seasonal months are matched through the JSON array."""
    assert await _ids(catalog, CandidateCriteria(in_season_month=6)) == {"p1"}
    assert await _ids(catalog, CandidateCriteria(in_season_month=12)) == set()


async def test_find_candidates_limit(catalog: SQLiteRepository):
    """Test the row limit is applied."""
    assert len(await catalog.find_candidates(CandidateCriteria(), 1)) == 1


async def test_find_candidates_skips_missing_columns(tmp_path: Path):
    """Test predicates on columns an older schema lacks are skipped."""
    db_path = tmp_path / "legacy.db"
    async with aiosqlite.connect(db_path) as conn:
        await conn.execute(
            "CREATE TABLE products (id TEXT PRIMARY KEY, name TEXT, seller_id TEXT, price REAL)"
        )
        await conn.execute(
            "INSERT INTO products VALUES ('old', 'Potatoes', 's9', 1.25)"
        )
        await conn.commit()

    repo = SQLiteRepository(db_path)
    try:
        products = await repo.find_candidates(
            CandidateCriteria(organic=True, categories=["Vegetables"], max_price=Decimal("3")),
            10,
        )
    finally:
        await repo.close()

    assert [p.id for p in products] == ["old"]
    assert products[0].organic is False
    assert products[0].price == Decimal("1.25")


async def test_sample_active(catalog: SQLiteRepository):
    """Test the sample only contains active products."""
    sample = await catalog.sample_active(10)
    assert {p.id for p in sample} == {"p1", "p2"}


async def test_facets(catalog: SQLiteRepository):
    """Test categories, delivery methods and prices of active listings."""
    options = await catalog.facets()

    assert options.categories == ["Fruits", "Vegetables"]
    assert options.delivery_methods == [
        DeliveryMethod.HOME_DELIVERY,
        DeliveryMethod.MARKET,
        DeliveryMethod.PICKUP,
    ]
    assert options.price_min == Decimal("2.0")
    assert options.price_max == Decimal("8.5")
    assert options.price_avg == Decimal("5.25")


async def test_facets_empty_catalog(repo: SQLiteRepository):
    """Test default price range with no products."""
    options = await repo.facets()
    assert options.categories == []
    assert options.price_min == Decimal("0")
    assert options.price_max == Decimal("100")


async def test_get_seller(catalog: SQLiteRepository):
    """Test seller lookup with and without a position."""
    anna = await catalog.get_seller("s1")
    assert anna is not None
    assert anna.farm_name == "Sunny Acres"
    assert anna.verified is True
    assert anna.position == GeoPoint(lat=52.0, lng=19.0)

    jan = await catalog.get_seller("s2")
    assert jan is not None
    assert jan.position is None

    assert await catalog.get_seller("missing") is None


async def test_list_sellers(catalog: SQLiteRepository):
    """Test seller listing with the verified filter."""
    assert {s.id for s in await catalog.list_sellers()} == {"s1", "s2"}
    assert [s.id for s in await catalog.list_sellers(verified_only=True)] == ["s1"]


async def test_published_ratings(repo: SQLiteRepository):
    """Test only published reviews count."""
    await repo.insert_review(Review(id="r1", seller_id="s1", rating=5))
    await repo.insert_review(Review(id="r2", seller_id="s1", rating=3))
    await repo.insert_review(
        Review(id="r3", seller_id="s1", rating=1, status=ReviewStatus.HIDDEN)
    )
    await repo.insert_review(Review(id="r4", seller_id="s2", rating=4))

    assert sorted(await repo.published_ratings("s1")) == [3.0, 5.0]
    assert await repo.published_ratings("nobody") == []


async def test_insert_replaces_existing(repo: SQLiteRepository):
    """Test inserting the same ID again replaces the row."""
    await repo.insert_product(Product(id="p1", name="Eggs", seller_id="s1", stock=6))
    await repo.insert_product(Product(id="p1", name="Eggs", seller_id="s1", stock=12))

    assert await repo.get_product_count() == 1
    products = await repo.find_candidates(CandidateCriteria(), 10)
    assert products[0].stock == 12


async def test_read_error_becomes_storage_error(repo: SQLiteRepository):
    """Test driver errors surface as StorageError."""
    with pytest.raises(StorageError) as exc_info:
        await repo._read("SELECT * FROM no_such_table")
    assert exc_info.value.code is ErrorCode.STORAGE_READ_FAILED


async def test_malformed_rows_are_skipped(repo: SQLiteRepository):
    """Test a corrupt listing is dropped while valid ones are still returned."""
    await repo.insert_product(Product(id="good", name="Eggs", seller_id="s1"))
    conn = await repo._get_connection()
    await conn.execute(
        "INSERT INTO products (id, name, seller_id, delivery_options) VALUES (?, ?, ?, ?)",
        ("courier", "Milk", "s1", '["courier"]'),
    )
    await conn.execute(
        "INSERT INTO products (id, name, seller_id, freshness) VALUES (?, ?, ?, ?)",
        ("blank", "Cheese", "s1", ""),
    )
    await conn.execute(
        "INSERT INTO products (id, name, seller_id, tags) VALUES (?, ?, ?, ?)",
        ("badjson", "Butter", "s1", "[not json"),
    )
    await conn.commit()

    candidates = await repo.find_candidates(CandidateCriteria(), 10)
    sample = await repo.sample_active(10)

    assert [p.id for p in candidates] == ["good"]
    assert [p.id for p in sample] == ["good"]

    result = await DiscoveryEngine(repo, repo, repo).search(SearchQuery())
    assert [m.product.id for m in result.products] == ["good"]


async def test_find_candidates_stable_order(catalog: SQLiteRepository):
    """Test candidates come back in id order so pages are repeatable."""
    products = await catalog.find_candidates(CandidateCriteria(), 10)
    assert [p.id for p in products] == ["p1", "p2"]
