"""
Search Fetch Cache - in-memory caches for web search results and URL fetches.

Search results are stored per query and addressable by search id or by
result id. URL fetches are streamed into size-bounded records and served
back as raw byte ranges or as processed text (extraction, summary, grep).

Main entry points are CacheRuntime (see api.py) and the `search-fetch-cache`
CLI.

Example:
    $ search-fetch-cache fetch https://example.com --summarize
"""

__all__ = ["__version__", "CacheRuntime", "load_config", "ProcessingOptions"]
__version__ = "0.1.0"

from .api import CacheRuntime
from .config import load_config
from .core.types import ProcessingOptions
