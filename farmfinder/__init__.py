"""
FarmFinder - Location-aware product discovery for a farm-to-customer marketplace.

Example:
    >>> from farmfinder.domains.discovery import DiscoveryEngine, GeoPoint, SearchQuery
    >>> engine = DiscoveryEngine(repo, repo, repo)
    >>> result = await engine.search(SearchQuery(text="tomato", position=GeoPoint(lat=52.0, lng=19.0)))
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
