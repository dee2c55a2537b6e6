"""
Cache of search results.

Each stored search becomes one SearchRecord; every result inside it is
reachable by its own result id through the store's alias index, which is
updated together with the record so a result id resolves if and only if
its search is live.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import json
import logging
from typing import Any, Iterable
import uuid

from ..config import CacheConfig
from ..core.paging import page_envelope, paginate
from ..core.store import Clock, Store, utcnow
from ..core.types import SearchRecord, SearchResultEntry
from ..logging_utils import get_logger, log_event


SNIPPET_PREVIEW_CHARS = 100


@dataclass
class SearchSummary:
    """What `store` hands back: ids plus truncated snippets."""
    search_id: str
    result_count: int
    timestamp: datetime
    expires_at: datetime
    results: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchId": self.search_id,
            "resultCount": self.result_count,
            "timestamp": self.timestamp.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "results": list(self.results),
        }


def preview_snippet(snippet: str) -> str:
    if len(snippet) <= SNIPPET_PREVIEW_CHARS:
        return snippet
    return snippet[:SNIPPET_PREVIEW_CHARS] + "..."


class SearchCacheService:
    """Stores search results and answers lookups by search id or result id."""

    def __init__(
        self,
        cfg: CacheConfig | None = None,
        clock: Clock = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg or CacheConfig()
        self._clock = clock
        self._logger = logger or get_logger("search")
        self.store_engine: Store[SearchRecord] = Store(
            "search",
            max_entries=self.cfg.max_entries,
            max_total_bytes=self.cfg.max_total_cache_size,
            sweep_interval=self.cfg.search_sweep_seconds,
            clock=clock,
            alias_keys=lambda record: [r.result_id for r in record.results],
            logger=self._logger,
        )

    def store(self, query: str, items: Iterable[dict[str, Any]]) -> SearchSummary:
        search_id = str(uuid.uuid4())
        created_at = self._clock()
        expires_at = created_at + timedelta(minutes=self.cfg.ttl_minutes)

        results = [_to_entry(item) for item in items]
        record = SearchRecord(
            search_id=search_id,
            query=query,
            created_at=created_at,
            expires_at=expires_at,
            results=results,
        )
        self.store_engine.insert(search_id, record, _record_size(record))

        log_event(
            self._logger,
            f"Search cached: {search_id}, results: {len(results)}",
            event="search_cached",
            search_id=search_id,
            result_count=len(results),
        )
        return SearchSummary(
            search_id=search_id,
            result_count=len(results),
            timestamp=created_at,
            expires_at=expires_at,
            results=[
                {
                    "resultId": r.result_id,
                    "title": r.title,
                    "link": r.link,
                    "snippet": preview_snippet(r.snippet),
                }
                for r in results
            ],
        )

    def get_by_search_id(self, search_id: str) -> SearchRecord | None:
        return self.store_engine.get(search_id)

    def get_by_result_id(self, result_id: str) -> SearchResultEntry | None:
        record = self.store_engine.get_by_alias(result_id)
        if record is None:
            return None
        for result in record.results:
            if result.result_id == result_id:
                return result
        self._logger.warning("Result not found in cache: resultId %s", result_id)
        return None

    def list_search_history(
        self,
        keyword: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        records = sorted(self.store_engine.live_records(), key=lambda r: r.created_at, reverse=True)
        if keyword:
            needle = keyword.lower()
            records = [r for r in records if needle in r.query.lower()]

        page_records, total_pages = paginate(records, page, limit)
        log_event(
            self._logger,
            f"Retrieved search history: {len(page_records)}/{len(records)} entries "
            f"(page {page}/{total_pages})",
            level=logging.DEBUG,
            event="search_history",
        )
        rows = [
            {
                "searchId": r.search_id,
                "query": r.query,
                "timestamp": r.created_at.isoformat(),
                "resultCount": len(r.results),
                "expiresAt": r.expires_at.isoformat(),
            }
            for r in page_records
        ]
        return page_envelope("searches", rows, len(records), page, total_pages)

    def sweep_expired(self) -> int:
        return self.store_engine.sweep_expired()

    def start(self) -> None:
        self.store_engine.start_sweeper()

    def close(self) -> None:
        self.store_engine.stop_sweeper()


def _to_entry(item: dict[str, Any]) -> SearchResultEntry:
    return SearchResultEntry(
        result_id=str(uuid.uuid4()),
        title=item.get("title") or "",
        link=item.get("link") or "",
        snippet=item.get("snippet") or "",
        display_link=item.get("displayLink"),
        html_title=item.get("htmlTitle"),
        html_snippet=item.get("htmlSnippet"),
        raw=dict(item),
    )


def _record_size(record: SearchRecord) -> int:
    size = len(record.query.encode("utf-8"))
    for result in record.results:
        size += len(json.dumps(result.raw, ensure_ascii=False, default=str).encode("utf-8"))
    return size
