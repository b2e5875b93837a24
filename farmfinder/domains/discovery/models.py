"""
Discovery Models - Data types for the product discovery domain.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from .geo import is_valid_position


class Freshness(str, Enum):
    """Freshness tag carried by a product."""

    HARVESTED_TODAY = "harvested_today"
    THIS_WEEK = "this_week"
    ALWAYS_FRESH = "always_fresh"
    NONE = "none"


class DeliveryMethod(str, Enum):
    """Fulfillment methods a seller can offer for a product."""

    PICKUP = "pickup"
    HOME_DELIVERY = "home_delivery"
    MARKET = "market"


class ProductStatus(str, Enum):
    """Listing status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ReviewStatus(str, Enum):
    """Moderation status of a review. Only published reviews count."""

    PUBLISHED = "published"
    PENDING = "pending"
    HIDDEN = "hidden"
    FLAGGED = "flagged"


class Availability(str, Enum):
    """Availability mode requested by the buyer."""

    ALL = "all"
    IN_STOCK = "in_stock"
    PRE_ORDER = "pre_order"


class SuggestionKind(str, Enum):
    """What an autocomplete entry refers to."""

    PRODUCT = "product"
    CATEGORY = "category"
    TAG = "tag"


class GeoPoint(BaseModel):
    """Latitude/longitude pair in degrees. Range is checked by geo.is_valid_position."""

    lat: float
    lng: float

    model_config = {"frozen": True}

    @property
    def is_valid(self) -> bool:
        return is_valid_position(self.lat, self.lng)


class Product(BaseModel):
    """Product listing as read from the product store."""

    id: str
    name: str
    description: str = ""
    category: str = ""
    price: Decimal = Decimal("0")
    stock: int = 0
    organic: bool = False
    seasonal_months: list[int] = Field(default_factory=list)
    freshness: Freshness = Freshness.NONE
    delivery_options: set[DeliveryMethod] = Field(default_factory=set)
    seller_id: str = Field(..., min_length=1)
    created_at: datetime | None = None
    status: ProductStatus = ProductStatus.ACTIVE

    # Denormalized fields kept on the listing document
    tags: list[str] = Field(default_factory=list)
    rating: float = 0.0
    pre_order_available: bool = False
    seller_verified: bool = False
    seller_name: str | None = None
    farm_name: str | None = None

    def is_in_season(self, month: int) -> bool:
        """True when the calendar month (1-12) is one of the product's active months."""
        return month in self.seasonal_months


class Seller(BaseModel):
    """Seller (farmer) profile fields the discovery engine reads."""

    id: str
    display_name: str = ""
    farm_name: str | None = None
    verified: bool = False
    position: GeoPoint | None = None
    address: str = ""


class Review(BaseModel):
    """Single review of a seller."""

    id: str
    seller_id: str
    rating: float = Field(..., ge=1, le=5)
    status: ReviewStatus = ReviewStatus.PUBLISHED


class SellerLocation(BaseModel):
    """Resolved, validated seller position with display fields."""

    seller_id: str
    position: GeoPoint
    display_name: str = ""
    farm_name: str | None = None
    verified: bool = False
    address: str = ""


class ProductMatch(BaseModel):
    """Product flowing through the pipeline, augmented with distance and seller fields."""

    product: Product
    distance_km: float | None = None
    seller: SellerLocation | None = None

    @property
    def seller_id(self) -> str:
        return self.product.seller_id


class SearchQuery(BaseModel):
    """Product discovery request."""

    text: str = ""
    position: GeoPoint | None = None
    radius_km: float | None = Field(default=None, gt=0)
    categories: list[str] = Field(default_factory=list)
    min_price: Decimal | None = Field(default=None, ge=0)
    max_price: Decimal | None = Field(default=None, ge=0)
    availability: Availability = Availability.ALL
    organic: bool = False
    in_season: bool = False
    freshness: Freshness | None = None
    delivery_methods: set[DeliveryMethod] = Field(default_factory=set)
    min_seller_rating: float = Field(default=0.0, ge=0, le=5)
    verified_only: bool = False
    sort_by: str | None = None
    page_size: int = Field(default=20, ge=1, le=100)
    # Continuation cursor: number of ranked matches to skip (next_offset of the previous page)
    offset: int = Field(default=0, ge=0, le=10_000)
    timeout_seconds: float | None = Field(default=None, gt=0)
    # Pins the month used by the in-season filter; defaults to the current UTC month
    season_month: int | None = Field(default=None, ge=1, le=12)

    model_config = {"frozen": True}

    @field_validator("position")
    @classmethod
    def _position_in_range(cls, value: GeoPoint | None) -> GeoPoint | None:
        if value is not None and not value.is_valid:
            raise ValueError("position must have lat in [-90, 90] and lng in [-180, 180]")
        return value

    @model_validator(mode="after")
    def _price_range_ordered(self) -> SearchQuery:
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self

    @property
    def requires_position(self) -> bool:
        """Whether the caller asked for geography-dependent behavior."""
        return self.radius_km is not None or (self.sort_by or "").strip().lower() == "distance"


class CandidateCriteria(BaseModel):
    """Subset of a SearchQuery expressible as store-level predicates."""

    categories: list[str] = Field(default_factory=list)
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    availability: Availability = Availability.ALL
    organic: bool = False
    in_season_month: int | None = None
    freshness: Freshness | None = None
    verified_only: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_query(cls, query: SearchQuery, current_month: int) -> CandidateCriteria:
        """Extract store predicates; in-season resolves against season_month or current_month."""
        return cls(
            categories=list(query.categories),
            min_price=query.min_price,
            max_price=query.max_price,
            availability=query.availability,
            organic=query.organic,
            in_season_month=(query.season_month or current_month) if query.in_season else None,
            freshness=query.freshness,
            verified_only=query.verified_only,
        )


class SellerSummary(BaseModel):
    """Distinct seller present in a result."""

    id: str
    display_name: str | None = None
    farm_name: str | None = None
    verified: bool = False
    position: GeoPoint | None = None
    distance_km: float | None = None
    product_count: int = 0


class SearchResult(BaseModel):
    """Discovery response."""

    products: list[ProductMatch] = Field(default_factory=list)
    sellers: list[SellerSummary] = Field(default_factory=list)
    has_more: bool = False
    next_offset: int | None = None
    total_found: int = 0
    candidate_count: int = 0
    started_at: datetime
    filters_applied: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def should_suggest_broadening(self) -> bool:
        """Zero results after filters pruned a non-empty candidate pool."""
        return self.total_found == 0 and self.candidate_count > 0


class Suggestion(BaseModel):
    """Autocomplete entry."""

    text: str
    kind: SuggestionKind


class FilterOptions(BaseModel):
    """Filter choices available to the buyer, derived from active listings."""

    categories: list[str] = Field(default_factory=list)
    delivery_methods: list[DeliveryMethod] = Field(default_factory=list)
    price_min: Decimal = Decimal("0")
    price_max: Decimal = Decimal("100")
    price_avg: Decimal | None = None
    availability: list[Availability] = Field(default_factory=lambda: list(Availability))
    sort_keys: list[str] = Field(
        default_factory=lambda: [
            "distance",
            "price_low",
            "price_high",
            "rating",
            "newest",
            "availability",
        ]
    )
