"""
Discovery Domain - Location-aware product search.

This domain handles:
- Candidate retrieval through store contracts
- Free-text filtering with name-match ordering
- Seller location resolution and haversine radius pruning
- Delivery-option and seller-reputation filtering
- Ranking, pagination and seller list assembly
- Autocomplete suggestions
"""

from .contracts import ProductSearch, ProductStore, ReviewStore, SellerStore
from .engine import DiscoveryEngine
from .geo import haversine_km, is_valid_position
from .models import (
    Availability,
    CandidateCriteria,
    DeliveryMethod,
    FilterOptions,
    Freshness,
    GeoPoint,
    Product,
    ProductMatch,
    ProductStatus,
    Review,
    ReviewStatus,
    SearchQuery,
    SearchResult,
    Seller,
    SellerLocation,
    SellerSummary,
    Suggestion,
    SuggestionKind,
)
from .ranking import SortKey, rank
from .resolvers import SellerLocationResolver, SellerRatingAggregator

__all__ = [
    # Contracts
    "ProductSearch",
    "ProductStore",
    "SellerStore",
    "ReviewStore",
    # Engine
    "DiscoveryEngine",
    "SellerLocationResolver",
    "SellerRatingAggregator",
    "SortKey",
    "rank",
    "haversine_km",
    "is_valid_position",
    # Models
    "Availability",
    "CandidateCriteria",
    "DeliveryMethod",
    "FilterOptions",
    "Freshness",
    "GeoPoint",
    "Product",
    "ProductMatch",
    "ProductStatus",
    "Review",
    "ReviewStatus",
    "SearchQuery",
    "SearchResult",
    "Seller",
    "SellerLocation",
    "SellerSummary",
    "Suggestion",
    "SuggestionKind",
]
