"""
Operations exposed to a protocol dispatcher.

CacheRuntime owns one SearchCacheService and one FetchCacheService and
exposes every operation as a JSON-ready payload. Each call returns either
the result payload or an `{"error": True, "kind": ..., "message": ...}`
payload; no exception escapes.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from .config import AppConfig
from .core.store import Clock, utcnow
from .core.types import ProcessingOptions
from .errors import CacheError, ErrorKind, ValidationError, error_payload
from .fetch.fetcher import ClientFactory
from .logging_utils import get_logger
from .search_engine import search_google
from .services.fetch_cache import FetchCacheService
from .services.search_cache import SearchCacheService


MAX_OUTPUT_SIZE = 32768
MIN_TIMEOUT_MS = 100
MAX_TIMEOUT_MS = 600000
MAX_CHUNK_SIZE = 1024 * 1024
MAX_PAGE_LIMIT = 100

SEARCH_NOT_FOUND = "Search result not found or expired. The result ID may be invalid or the cache may have expired."
SEARCH_ID_NOT_FOUND = "Search cache not found or expired. The search ID may be invalid or the cache may have expired."
FETCH_NOT_FOUND = "Fetch cache not found or expired. The request ID may be invalid or the cache may have expired."

logger = get_logger("api")

F = TypeVar("F", bound=Callable[..., Any])


def _tagged(func: F) -> F:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return func(*args, **kwargs)
        except CacheError as err:
            logger.info("%s rejected: %s", func.__name__, err.message)
            return err.to_payload()
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error in %s", func.__name__)
            return error_payload(ErrorKind.INTERNAL, f"Failed to complete {func.__name__}")

    return wrapper  # type: ignore[return-value]


def _tagged_async(func: Callable[..., Awaitable[dict[str, Any]]]) -> Callable[..., Awaitable[dict[str, Any]]]:
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return await func(*args, **kwargs)
        except CacheError as err:
            logger.info("%s rejected: %s", func.__name__, err.message)
            return err.to_payload()
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error in %s", func.__name__)
            return error_payload(ErrorKind.INTERNAL, f"Failed to complete {func.__name__}")

    return wrapper


def _require_range(name: str, value: Any, low: int, high: int | None = None) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < low or (high is not None and value > high):
        bound = f"[{low}, {high}]" if high is not None else f">= {low}"
        raise ValidationError(f"{name} must be {bound}, got {value}")


def _build_options(**fields: Any) -> ProcessingOptions:
    try:
        return ProcessingOptions(**fields)
    except TypeError as exc:
        raise ValidationError(f"Invalid processing options: {exc}") from exc


def _not_found(message: str, **fields: Any) -> dict[str, Any]:
    return error_payload(ErrorKind.NOT_FOUND, message, **fields)


class CacheRuntime:
    """Both caches plus their background sweepers.

    Usable as a context manager; sweepers start on enter and stop on exit.
    """

    def __init__(
        self,
        cfg: AppConfig | None = None,
        clock: Clock = utcnow,
        client_factory: ClientFactory | None = None,
        search_client_factory: ClientFactory | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg or AppConfig()
        self.search = SearchCacheService(self.cfg.cache, clock=clock, logger=logger)
        self.fetch = FetchCacheService(
            self.cfg.cache,
            self.cfg.fetch,
            self.cfg.extract,
            clock=clock,
            client_factory=client_factory,
            logger=logger,
        )
        self._search_client_factory = search_client_factory

    def start(self) -> None:
        self.search.start()
        self.fetch.start()

    def close(self) -> None:
        self.search.close()
        self.fetch.close()

    def __enter__(self) -> "CacheRuntime":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- search cache --------------------------------------------------

    @_tagged
    def store_search(self, query: str, items: list[dict[str, Any]]) -> dict[str, Any]:
        return self.search.store(query, items).to_dict()

    @_tagged_async
    async def google_search(self, query: str, **options: Any) -> dict[str, Any]:
        items = await search_google(
            query,
            self.cfg.search,
            client_factory=self._search_client_factory,
            **options,
        )
        return self.search.store(query, items).to_dict()

    @_tagged
    def get_search_by_id(self, search_id: str) -> dict[str, Any]:
        record = self.search.get_by_search_id(search_id)
        if record is None:
            return _not_found(SEARCH_ID_NOT_FOUND, searchId=search_id)
        return record.to_dict()

    @_tagged
    def get_result_by_id(self, result_id: str) -> dict[str, Any]:
        result = self.search.get_by_result_id(result_id)
        if result is None:
            return _not_found(SEARCH_NOT_FOUND, resultId=result_id)
        return result.to_dict()

    @_tagged
    def list_search_history(
        self,
        keyword: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        _require_range("page", page, 1)
        _require_range("limit", limit, 1, MAX_PAGE_LIMIT)
        return self.search.list_search_history(keyword=keyword, page=page, limit=limit)

    # -- fetch cache ---------------------------------------------------

    @_tagged_async
    async def fetch_and_cache(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        output_size: int = 4096,
        timeout_ms: int = 30000,
        include_headers: bool = False,
        **processing: Any,
    ) -> dict[str, Any]:
        if not url or "://" not in url:
            raise ValidationError(f"url must be an absolute URL, got {url!r}")
        _require_range("outputSize", output_size, 1, MAX_OUTPUT_SIZE)
        _require_range("timeout", timeout_ms, MIN_TIMEOUT_MS, MAX_TIMEOUT_MS)
        options = _build_options(output_size=output_size, **processing)

        result = await self.fetch.fetch_and_cache(
            url,
            method=method,
            headers=headers,
            timeout_ms=timeout_ms,
            include_headers=include_headers,
            options=options,
        )
        return result.to_dict()

    @_tagged
    def get_raw_chunk(
        self,
        request_id: str,
        include_headers: bool = False,
        start_position: int = 0,
        size: int = 4096,
    ) -> dict[str, Any]:
        _require_range("startPosition", start_position, 0)
        _require_range("size", size, 1, MAX_CHUNK_SIZE)
        chunk = self.fetch.get_raw_chunk(request_id, include_headers, start_position, size)
        if chunk is None:
            return _not_found(FETCH_NOT_FOUND, requestId=request_id)
        return chunk.to_dict()

    @_tagged
    def get_processed_view(
        self,
        request_id: str,
        include_headers: bool = False,
        **processing: Any,
    ) -> dict[str, Any]:
        options = _build_options(**processing)
        result = self.fetch.get_processed_view(request_id, options, include_headers)
        if result is None:
            return _not_found(FETCH_NOT_FOUND, requestId=request_id)
        return result.to_dict()

    @_tagged
    def get_fetch_meta(self, request_id: str) -> dict[str, Any]:
        meta = self.fetch.get_fetch_meta(request_id)
        if meta is None:
            return _not_found(FETCH_NOT_FOUND, requestId=request_id)
        return meta

    @_tagged
    def list_fetch_history(
        self,
        request_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        _require_range("page", page, 1)
        _require_range("limit", limit, 1, MAX_PAGE_LIMIT)
        return self.fetch.list_fetch_history(request_id=request_id, page=page, limit=limit)
