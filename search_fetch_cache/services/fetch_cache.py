"""
Cache of URL fetches.

fetch_and_cache drives one record through InProgress -> Completed | Error:
the record is inserted before the request starts so listers see it in
flight, bytes are streamed into it up to the per-entry cap, the store's
byte budget is settled, and the processed view is rendered from the
stored bytes. Later reads slice the raw buffer or re-render the view;
neither ever modifies the stored bytes.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
import logging
from typing import Any
import uuid

from ..config import CacheConfig, ExtractConfig, FetchConfig
from ..content.processor import build_view
from ..core.paging import page_envelope, paginate
from ..core.store import Clock, Store, utcnow
from ..core.types import FetchRecord, FetchResult, FetchStatus, ProcessingOptions, RawChunk
from ..errors import ErrorKind, NetworkError
from ..fetch.fetcher import ClientFactory, default_client_factory, stream_into
from ..logging_utils import get_logger, log_event


class FetchCacheService:
    """Fetches URLs into a size-bounded store and serves views of the stored bytes."""

    def __init__(
        self,
        cache_cfg: CacheConfig | None = None,
        fetch_cfg: FetchConfig | None = None,
        extract_cfg: ExtractConfig | None = None,
        clock: Clock = utcnow,
        client_factory: ClientFactory | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cache_cfg = cache_cfg or CacheConfig()
        self.fetch_cfg = fetch_cfg or FetchConfig()
        self.extract_cfg = extract_cfg or ExtractConfig()
        self._clock = clock
        self._client_factory = client_factory or default_client_factory(self.fetch_cfg)
        self._logger = logger or get_logger("fetch")
        self.store_engine: Store[FetchRecord] = Store(
            "fetch",
            max_entries=self.cache_cfg.max_entries,
            max_total_bytes=self.cache_cfg.max_total_cache_size,
            sweep_interval=self.cache_cfg.fetch_sweep_seconds,
            clock=clock,
            logger=self._logger,
        )
        log_event(
            self._logger,
            "Fetch cache initialized with limits: "
            f"MAX_FILE_SIZE={self.max_file_size} bytes, "
            f"MAX_TOTAL_CACHE_SIZE={self.cache_cfg.max_total_cache_size} bytes",
            level=logging.DEBUG,
            event="fetch_cache_init",
        )

    @property
    def max_file_size(self) -> int:
        return self.cache_cfg.effective_file_size

    async def fetch_and_cache(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
        include_headers: bool = False,
        options: ProcessingOptions | None = None,
    ) -> FetchResult:
        options = options or ProcessingOptions()
        timeout_ms = timeout_ms or self.fetch_cfg.default_timeout_ms
        record = self._new_record(url, method, headers)
        self.store_engine.insert(record.request_id, record, 0)

        log_event(
            self._logger,
            f"Starting fetch: {method} {url}",
            event="fetch_start",
            request_id=record.request_id,
            url=url,
            method=method,
        )

        try:
            outcome = await stream_into(
                record,
                self._client_factory,
                max_bytes=self.max_file_size,
                timeout_ms=timeout_ms,
                logger=self._logger,
            )
        except NetworkError as err:
            self._fail(record, err.message, err.code, err.kind)
            return self._error_result(record)
        except asyncio.CancelledError:
            self._fail(record, "Request cancelled", None, ErrorKind.NETWORK)
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.exception("Unexpected fetch failure for %s", record.request_id)
            self._fail(record, f"Internal error: {type(exc).__name__}: {exc}", None, ErrorKind.INTERNAL)
            return self._error_result(record)

        evicted = self.store_engine.resize(record.request_id, len(record.data))
        self._finalize(record)

        log_event(
            self._logger,
            f"Fetch completed: {record.request_id}, status: {record.http_status}, "
            f"size: {record.fetched_size}",
            event="fetch_complete",
            request_id=record.request_id,
            http_status=record.http_status,
            fetched_size=record.fetched_size,
            truncated=outcome.truncated,
            final_url=outcome.final_url,
            evicted=len(evicted),
            total_bytes=self.store_engine.total_bytes,
            entries=len(self.store_engine),
        )
        return build_view(record, options, include_headers, self.extract_cfg)

    def get_by_request_id(self, request_id: str) -> FetchRecord | None:
        return self.store_engine.get(request_id)

    def get_raw_chunk(
        self,
        request_id: str,
        include_headers: bool = False,
        start_position: int = 0,
        size: int = 4096,
    ) -> RawChunk | None:
        record = self.store_engine.get(request_id)
        if record is None:
            return None

        data = bytes(record.data)
        end = min(start_position + size, len(data))
        return RawChunk(
            request_id=record.request_id,
            url=record.url,
            http_status=record.http_status,
            content_size=len(data),
            start_position=start_position,
            data=data[start_position:end],
            has_more=end < len(data),
            response_headers=record.response_headers if include_headers else None,
            metadata={
                "method": record.method,
                "timestamp": record.created_at.isoformat(),
                "status": record.status.value,
                "error": record.error,
            },
        )

    def get_processed_view(
        self,
        request_id: str,
        options: ProcessingOptions | None = None,
        include_headers: bool = False,
    ) -> FetchResult | None:
        record = self.store_engine.get(request_id)
        if record is None:
            return None
        if record.status is FetchStatus.ERROR and record.http_status is None:
            return self._error_result(record)
        return build_view(record, options or ProcessingOptions(), include_headers, self.extract_cfg)

    def get_fetch_meta(self, request_id: str) -> dict[str, Any] | None:
        record = self.store_engine.get(request_id)
        if record is None:
            return None
        return {
            "requestId": record.request_id,
            "url": record.url,
            "method": record.method,
            "status": record.status.value,
            "httpStatus": record.http_status,
            "contentType": record.content_type,
            "expectedSize": record.expected_size,
            "fetchedSize": record.fetched_size,
            "timestamp": record.created_at.isoformat(),
            "expiresAt": record.expires_at.isoformat(),
        }

    def list_fetch_history(
        self,
        request_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        records = sorted(self.store_engine.live_records(), key=lambda r: r.created_at, reverse=True)
        if request_id:
            records = [r for r in records if r.request_id == request_id]

        page_records, total_pages = paginate(records, page, limit)
        rows = [r.summary_row() for r in page_records]
        return page_envelope("requests", rows, len(records), page, total_pages)

    def sweep_expired(self) -> int:
        return self.store_engine.sweep_expired()

    def start(self) -> None:
        self.store_engine.start_sweeper()

    def close(self) -> None:
        self.store_engine.stop_sweeper()

    def _new_record(self, url: str, method: str, headers: dict[str, str] | None) -> FetchRecord:
        created_at = self._clock()
        return FetchRecord(
            request_id=str(uuid.uuid4()),
            url=url,
            method=method.upper(),
            headers=dict(headers) if headers else None,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=self.cache_cfg.ttl_minutes),
        )

    def _finalize(self, record: FetchRecord) -> None:
        status = record.http_status or 0
        if 200 <= status < 300:
            record.status = FetchStatus.COMPLETED
            return
        record.status = FetchStatus.ERROR
        record.error = f"HTTP {status}: {record.status_text or ''}"
        log_event(
            self._logger,
            f"Fetch error for {record.request_id}: {record.error}",
            level=logging.WARNING,
            event="fetch_error",
            request_id=record.request_id,
            error_kind=ErrorKind.UPSTREAM_HTTP.value,
            http_status=status,
        )

    def _fail(self, record: FetchRecord, message: str, code: str | None, kind: ErrorKind) -> None:
        # a failed exchange keeps no partial upstream state
        record.data.clear()
        record.fetched_size = 0
        record.http_status = None
        record.status_text = None
        self.store_engine.resize(record.request_id, 0)
        record.status = FetchStatus.ERROR
        record.error = message
        record.error_code = code
        log_event(
            self._logger,
            f"Fetch error for {record.request_id}: {message}",
            level=logging.ERROR,
            event="fetch_error",
            request_id=record.request_id,
            error_kind=kind.value,
            error_code=code,
        )

    def _error_result(self, record: FetchRecord) -> FetchResult:
        return FetchResult(
            request_id=record.request_id,
            status=0,
            status_text="Error",
            actual_size=0,
            data="",
            is_complete=True,
            error=record.error,
            error_code=record.error_code,
        )
