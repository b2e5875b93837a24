"""
Result Assembly - Page slicing and distinct-seller derivation.
"""

from __future__ import annotations

from datetime import datetime

from .models import ProductMatch, SearchResult, SellerSummary

__all__ = ["assemble_result", "summarize_sellers"]


def summarize_sellers(page: list[ProductMatch]) -> list[SellerSummary]:
    """
    Group a page of matches by seller, counting products per seller.

    Sellers appear in order of their first product on the page. Display
    fields come from the resolved location when the geo filter ran, and
    from the product's denormalized fields otherwise.
    """
    summaries: dict[str, SellerSummary] = {}

    for match in page:
        summary = summaries.get(match.seller_id)
        if summary is None:
            product = match.product
            location = match.seller
            summary = SellerSummary(
                id=match.seller_id,
                display_name=location.display_name if location else product.seller_name,
                farm_name=location.farm_name if location else product.farm_name,
                verified=location.verified if location else product.seller_verified,
                position=location.position if location else None,
                distance_km=match.distance_km,
            )
            summaries[match.seller_id] = summary
        summary.product_count += 1

    return list(summaries.values())


def assemble_result(
    ranked: list[ProductMatch],
    page_size: int,
    started_at: datetime,
    offset: int = 0,
    candidate_count: int = 0,
    filters_applied: bool = False,
) -> SearchResult:
    """
    Slice one page and build the SearchResult.

    Args:
        ranked: Fully filtered and ranked matches
        page_size: Maximum products to return
        started_at: Wall-clock start of the search
        offset: Ranked matches to skip before the page starts
        candidate_count: Size of the retrieved pool before client-side pruning
        filters_applied: Whether any filter beyond status=active was requested

    Returns:
        SearchResult; well-formed even when `ranked` is empty
    """
    end = offset + page_size
    page = ranked[offset:end]
    has_more = len(ranked) > end
    return SearchResult(
        products=page,
        sellers=summarize_sellers(page),
        has_more=has_more,
        next_offset=end if has_more else None,
        total_found=len(ranked),
        candidate_count=candidate_count,
        started_at=started_at,
        filters_applied=filters_applied,
    )
