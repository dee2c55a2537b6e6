"""
Core domain models and the generic cache engine.

This package contains the record types and the Store that every cache
service is built on.
"""

from .store import Store, utcnow
from .types import (
    FetchRecord,
    FetchResult,
    FetchStatus,
    GrepMatch,
    MatchRange,
    ProcessingOptions,
    RawChunk,
    SearchRecord,
    SearchResultEntry,
)

__all__ = [
    "Store",
    "utcnow",
    "FetchRecord",
    "FetchResult",
    "FetchStatus",
    "GrepMatch",
    "MatchRange",
    "ProcessingOptions",
    "RawChunk",
    "SearchRecord",
    "SearchResultEntry",
]
