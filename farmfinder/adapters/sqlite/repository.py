"""
SQLite Repository - Marketplace storage for the discovery engine.

Features:
- Async operations via aiosqlite
- Implements ProductStore, SellerStore and ReviewStore
- Predicates on columns missing from an older schema are skipped
- Transient read errors ("database is locked") retried with tenacity
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from farmfinder.config.errors import ErrorCode, StorageError
from farmfinder.domains.discovery.models import (
    Availability,
    CandidateCriteria,
    DeliveryMethod,
    FilterOptions,
    GeoPoint,
    Product,
    Review,
    Seller,
)

logger = logging.getLogger(__name__)

__all__ = ["SQLiteRepository"]

_JSON_COLUMNS = ("seasonal_months", "delivery_options", "tags")
_BOOL_COLUMNS = ("organic", "pre_order_available", "seller_verified")


class SQLiteRepository:
    """
    SQLite repository for sellers, products and reviews.

    Example:
        >>> repo = SQLiteRepository("data/farmfinder.db")
        >>> await repo.initialize()
        >>> await repo.insert_seller(Seller(id="s1", display_name="Anna"))
        >>> products = await repo.find_candidates(CandidateCriteria(), limit=40)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: aiosqlite.Connection | None = None
        self._product_columns: set[str] | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                self._connection = await aiosqlite.connect(str(self.db_path))
            except aiosqlite.Error as e:
                raise StorageError(
                    f"Could not open database: {e}",
                    {"db_path": str(self.db_path)},
                    code=ErrorCode.STORAGE_CONNECTION_FAILED,
                ) from e
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def initialize(self) -> None:
        """Initialize database schema."""
        conn = await self._get_connection()

        await conn.executescript("""
            -- Sellers (farmers)
            CREATE TABLE IF NOT EXISTS sellers (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL DEFAULT '',
                farm_name TEXT,
                verified INTEGER NOT NULL DEFAULT 0,
                lat REAL,
                lng REAL,
                address TEXT NOT NULL DEFAULT ''
            );

            -- Product listings with denormalized seller fields
            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                category TEXT NOT NULL DEFAULT '',
                price REAL NOT NULL DEFAULT 0,
                stock INTEGER NOT NULL DEFAULT 0,
                organic INTEGER NOT NULL DEFAULT 0,
                seasonal_months TEXT,
                freshness TEXT NOT NULL DEFAULT 'none',
                delivery_options TEXT,
                seller_id TEXT NOT NULL,
                created_at TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                tags TEXT,
                rating REAL NOT NULL DEFAULT 0,
                pre_order_available INTEGER NOT NULL DEFAULT 0,
                seller_verified INTEGER NOT NULL DEFAULT 0,
                seller_name TEXT,
                farm_name TEXT
            );

            -- Reviews of sellers
            CREATE TABLE IF NOT EXISTS reviews (
                id TEXT PRIMARY KEY,
                seller_id TEXT NOT NULL,
                rating REAL NOT NULL,
                status TEXT NOT NULL DEFAULT 'published'
            );

            -- Indexes
            CREATE INDEX IF NOT EXISTS idx_products_status ON products(status);
            CREATE INDEX IF NOT EXISTS idx_products_category ON products(category);
            CREATE INDEX IF NOT EXISTS idx_products_seller ON products(seller_id);
            CREATE INDEX IF NOT EXISTS idx_reviews_seller ON reviews(seller_id, status);
        """)

        await conn.commit()
        self._product_columns = None
        logger.info("Database initialized: %s", self.db_path)

    # --- Low-level reads ---

    @retry(
        retry=retry_if_exception_type(aiosqlite.OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    async def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Run a read query, retrying transient operational errors."""
        conn = await self._get_connection()
        cursor = await conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _read(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Read rows, converting driver errors into StorageError."""
        try:
            return await self._fetchall(sql, params)
        except aiosqlite.Error as e:
            raise StorageError(f"Query failed: {e}", {"sql": " ".join(sql.split()[:4])}) from e

    async def _columns(self) -> set[str]:
        """Column names of the products table (cached until the next initialize)."""
        if self._product_columns is None:
            rows = await self._read("PRAGMA table_info(products)")
            self._product_columns = {row["name"] for row in rows}
        return self._product_columns

    # --- ProductStore ---

    async def find_candidates(
        self,
        criteria: CandidateCriteria,
        limit: int,
    ) -> list[Product]:
        """
        Candidate products matching the store-level predicates.

        Args:
            criteria: Exact-match/range predicates
            limit: Maximum rows

        Returns:
            Active products, unordered
        """
        columns = await self._columns()
        clauses: list[str] = []
        params: list[Any] = []

        def where(column: str, clause: str, *values: Any) -> None:
            if column not in columns:
                logger.warning("Column %s missing from products, predicate skipped", column)
                return
            clauses.append(clause)
            params.extend(values)

        where("status", "status = ?", "active")
        if criteria.categories:
            placeholders = ",".join("?" * len(criteria.categories))
            where("category", f"category IN ({placeholders})", *criteria.categories)
        if criteria.min_price is not None:
            where("price", "price >= ?", float(criteria.min_price))
        if criteria.max_price is not None:
            where("price", "price <= ?", float(criteria.max_price))
        if criteria.availability is Availability.IN_STOCK:
            where("stock", "stock > 0")
        elif criteria.availability is Availability.PRE_ORDER:
            where("pre_order_available", "pre_order_available = 1")
        if criteria.organic:
            where("organic", "organic = 1")
        if criteria.in_season_month is not None:
            where(
                "seasonal_months",
                "EXISTS (SELECT 1 FROM json_each(products.seasonal_months) WHERE value = ?)",
                criteria.in_season_month,
            )
        if criteria.freshness is not None:
            where("freshness", "freshness = ?", criteria.freshness.value)
        if criteria.verified_only:
            where("seller_verified", "seller_verified = 1")

        sql = "SELECT * FROM products"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        # Stable order so successive pages see the same pool prefix
        if "id" in columns:
            sql += " ORDER BY id"
        sql += " LIMIT ?"
        params.append(limit)

        rows = await self._read(sql, tuple(params))
        return _rows_to_products(rows)

    async def sample_active(self, limit: int) -> list[Product]:
        """Small sample of active products."""
        rows = await self._read(
            "SELECT * FROM products WHERE status = 'active' LIMIT ?", (limit,)
        )
        return _rows_to_products(rows)

    async def facets(self) -> FilterOptions:
        """Categories, delivery methods and price statistics of active products."""
        category_rows = await self._read(
            "SELECT DISTINCT category FROM products "
            "WHERE status = 'active' AND category != '' ORDER BY category"
        )
        delivery_rows = await self._read(
            "SELECT DISTINCT json_each.value AS method "
            "FROM products, json_each(products.delivery_options) "
            "WHERE products.status = 'active'"
        )
        price_rows = await self._read(
            "SELECT MIN(price) AS min_price, MAX(price) AS max_price, AVG(price) AS avg_price "
            "FROM products WHERE status = 'active' AND price > 0"
        )

        known_methods = {m.value for m in DeliveryMethod}
        methods = sorted(
            (DeliveryMethod(row["method"]) for row in delivery_rows if row["method"] in known_methods),
            key=lambda m: m.value,
        )

        options = FilterOptions(
            categories=[row["category"] for row in category_rows],
            delivery_methods=methods,
        )
        stats = price_rows[0] if price_rows else {}
        if stats.get("min_price") is not None:
            options.price_min = Decimal(str(stats["min_price"]))
            options.price_max = Decimal(str(stats["max_price"]))
            options.price_avg = Decimal(str(round(stats["avg_price"], 2)))
        return options

    async def get_product_count(self) -> int:
        """Get total product count."""
        rows = await self._read("SELECT COUNT(*) AS n FROM products")
        return rows[0]["n"] if rows else 0

    # --- SellerStore ---

    async def get_seller(self, seller_id: str) -> Seller | None:
        """Get seller by ID."""
        rows = await self._read("SELECT * FROM sellers WHERE id = ?", (seller_id,))
        if rows:
            return _row_to_seller(rows[0])
        return None

    async def list_sellers(self, verified_only: bool = False) -> list[Seller]:
        """List sellers, optionally verified only."""
        if verified_only:
            rows = await self._read("SELECT * FROM sellers WHERE verified = 1")
        else:
            rows = await self._read("SELECT * FROM sellers")
        return [_row_to_seller(row) for row in rows]

    # --- ReviewStore ---

    async def published_ratings(self, seller_id: str) -> list[float]:
        """Ratings of published reviews for a seller."""
        rows = await self._read(
            "SELECT rating FROM reviews WHERE seller_id = ? AND status = 'published'",
            (seller_id,),
        )
        return [float(row["rating"]) for row in rows if row["rating"] is not None]

    # --- Writes (seeding and tests) ---

    async def insert_seller(self, seller: Seller) -> str:
        """Insert or replace a seller. Returns the seller ID."""
        position = seller.position
        await self._write(
            """
            INSERT OR REPLACE INTO sellers (id, display_name, farm_name, verified, lat, lng, address)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                seller.id,
                seller.display_name,
                seller.farm_name,
                int(seller.verified),
                position.lat if position else None,
                position.lng if position else None,
                seller.address,
            ),
        )
        return seller.id

    async def insert_product(self, product: Product) -> str:
        """Insert or replace a product. Returns the product ID."""
        await self._write(
            """
            INSERT OR REPLACE INTO products
            (id, name, description, category, price, stock, organic, seasonal_months,
             freshness, delivery_options, seller_id, created_at, status, tags, rating,
             pre_order_available, seller_verified, seller_name, farm_name)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                product.id,
                product.name,
                product.description,
                product.category,
                float(product.price),
                product.stock,
                int(product.organic),
                json.dumps(product.seasonal_months),
                product.freshness.value,
                json.dumps(sorted(m.value for m in product.delivery_options)),
                product.seller_id,
                product.created_at.isoformat() if product.created_at else None,
                product.status.value,
                json.dumps(product.tags),
                product.rating,
                int(product.pre_order_available),
                int(product.seller_verified),
                product.seller_name,
                product.farm_name,
            ),
        )
        return product.id

    async def insert_review(self, review: Review) -> str:
        """Insert or replace a review. Returns the review ID."""
        await self._write(
            "INSERT OR REPLACE INTO reviews (id, seller_id, rating, status) VALUES (?, ?, ?, ?)",
            (review.id, review.seller_id, review.rating, review.status.value),
        )
        return review.id

    async def _write(self, sql: str, params: tuple[Any, ...]) -> None:
        conn = await self._get_connection()
        try:
            await conn.execute(sql, params)
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Write failed: {e}", code=ErrorCode.STORAGE_WRITE_FAILED
            ) from e

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None


def _rows_to_products(rows: list[dict[str, Any]]) -> list[Product]:
    """Convert rows, logging and skipping malformed ones."""
    products: list[Product] = []
    for row in rows:
        try:
            products.append(_row_to_product(row))
        except (ValidationError, json.JSONDecodeError, InvalidOperation, TypeError) as e:
            logger.warning("Skipping malformed product %s: %s", row.get("id"), e)
    return products


def _row_to_product(row: dict[str, Any]) -> Product:
    """Build a Product from a row, letting model defaults fill absent columns."""
    data = {key: value for key, value in row.items() if value is not None}
    for key in _JSON_COLUMNS:
        if key in data:
            data[key] = json.loads(data[key])
    for key in _BOOL_COLUMNS:
        if key in data:
            data[key] = bool(data[key])
    if "price" in data:
        data["price"] = Decimal(str(data["price"]))
    return Product.model_validate(data)


def _row_to_seller(row: dict[str, Any]) -> Seller:
    """Build a Seller; position is kept even when out of range (resolver validates)."""
    lat, lng = row.get("lat"), row.get("lng")
    return Seller(
        id=row["id"],
        display_name=row.get("display_name") or "",
        farm_name=row.get("farm_name"),
        verified=bool(row.get("verified")),
        position=GeoPoint(lat=lat, lng=lng) if lat is not None and lng is not None else None,
        address=row.get("address") or "",
    )
