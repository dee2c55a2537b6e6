"""
Streaming URL retrieval.

This package handles the single HTTP exchange behind a fetch record:
streaming, truncation at the per-entry cap, and timeout handling.
"""

from .fetcher import ClientFactory, StreamOutcome, default_client_factory, stream_into

__all__ = [
    "ClientFactory",
    "StreamOutcome",
    "default_client_factory",
    "stream_into",
]
