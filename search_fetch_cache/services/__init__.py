"""
Cache services built on the generic Store.
"""

from .fetch_cache import FetchCacheService
from .search_cache import SearchCacheService, SearchSummary

__all__ = ["FetchCacheService", "SearchCacheService", "SearchSummary"]
