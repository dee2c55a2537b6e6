"""
Core data types for the search and fetch caches.

This module defines the fundamental data structures:
- SearchResultEntry / SearchRecord: Cached search results
- FetchRecord: A cached URL fetch, mutated while bytes stream in
- ProcessingOptions: How a stored payload is turned into a view
- FetchResult / RawChunk / GrepMatch: Views returned to callers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import ValidationError


class FetchStatus(str, Enum):
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    ERROR = "Error"


@dataclass
class SearchResultEntry:
    """A single search hit.

    Attributes:
        result_id: Globally unique id, never reused
        title: Result title
        link: Result URL
        snippet: Full snippet text (summaries truncate it, the record never does)
        display_link: Optional display host
        html_title: Optional title with markup
        html_snippet: Optional snippet with markup
        raw: The raw item mapping as received
    """
    result_id: str
    title: str
    link: str
    snippet: str
    display_link: str | None = None
    html_title: str | None = None
    html_snippet: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resultId": self.result_id,
            "title": self.title,
            "link": self.link,
            "snippet": self.snippet,
            "displayLink": self.display_link,
            "htmlTitle": self.html_title,
            "htmlSnippet": self.html_snippet,
            "rawData": self.raw,
        }


@dataclass
class SearchRecord:
    """A cached search, created fully populated and destroyed as a unit."""
    search_id: str
    query: str
    created_at: datetime
    expires_at: datetime
    results: list[SearchResultEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchId": self.search_id,
            "query": self.query,
            "timestamp": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class FetchRecord:
    """A cached fetch.

    Created in IN_PROGRESS before any byte arrives, appended to while the body
    streams, then finalized to COMPLETED or ERROR. `data` never exceeds the
    per-entry cap.
    """
    request_id: str
    url: str
    method: str
    created_at: datetime
    expires_at: datetime
    headers: dict[str, str] | None = None
    status: FetchStatus = FetchStatus.IN_PROGRESS
    http_status: int | None = None
    status_text: str | None = None
    content_type: str | None = None
    expected_size: int | None = None
    fetched_size: int = 0
    response_headers: dict[str, str] | None = None
    data: bytearray = field(default_factory=bytearray)
    error: str | None = None
    error_code: str | None = None

    def summary_row(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "url": self.url,
            "method": self.method,
            "status": self.status.value,
            "httpStatus": self.http_status,
            "expectedSize": self.expected_size,
            "fetchedSize": self.fetched_size,
            "timestamp": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


def _check_range(name: str, value: int | None, low: int, high: int) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ValidationError(f"{name} must be an integer in [{low}, {high}], got {value!r}")


@dataclass(frozen=True)
class ProcessingOptions:
    """How a stored payload is rendered into a FetchResult.

    Attributes:
        output_size: Maximum characters (processed) or bytes (raw) returned in `data`
        process: Convert the payload to text according to its detected kind
        summarize: Attach an extractive summary of the text
        summary_max_sentences: Sentence budget of the summary
        summary_max_chars: Character budget of the summary
        search: Pattern to grep for in the text
        search_is_regex: Treat `search` as a regular expression
        case_sensitive: Match case when searching
        context: Symmetric context lines around each match
        before: Lines of context before a match (overrides `context`)
        after: Lines of context after a match (overrides `context`)
        max_matches: Maximum number of matching lines reported
        include_raw_preview: Attach the first bytes of the raw payload
        raw_preview_size: Size of the raw preview in bytes
    """

    output_size: int = 4096
    process: bool = True
    summarize: bool = False
    summary_max_sentences: int = 3
    summary_max_chars: int = 500
    search: str | None = None
    search_is_regex: bool = False
    case_sensitive: bool = False
    context: int = 2
    before: int | None = None
    after: int | None = None
    max_matches: int = 20
    include_raw_preview: bool = False
    raw_preview_size: int = 512

    def __post_init__(self) -> None:
        _check_range("output_size", self.output_size, 1, 32768)
        _check_range("summary_max_sentences", self.summary_max_sentences, 1, 50)
        _check_range("summary_max_chars", self.summary_max_chars, 1, 10000)
        _check_range("context", self.context, 0, 50)
        _check_range("before", self.before, 0, 50)
        _check_range("after", self.after, 0, 50)
        _check_range("max_matches", self.max_matches, 1, 1000)
        _check_range("raw_preview_size", self.raw_preview_size, 1, 32768)


@dataclass
class MatchRange:
    start: int
    end: int


@dataclass
class GrepMatch:
    """One matching line with its surrounding context."""
    line: int
    match: str
    preview: str
    before: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)
    ranges: list[MatchRange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "line": self.line,
            "preview": self.preview,
            "before": list(self.before),
            "match": self.match,
            "after": list(self.after),
        }
        if self.ranges:
            payload["ranges"] = [{"start": r.start, "end": r.end} for r in self.ranges]
        return payload


@dataclass
class FetchResult:
    """The processed view of a fetch record."""
    request_id: str
    status: int
    status_text: str
    actual_size: int
    data: str
    is_complete: bool
    processed: bool = False
    content_type: str | None = None
    content_size: int | None = None
    text_size: int | None = None
    summary: str | None = None
    matches: list[GrepMatch] | None = None
    raw_preview: str | None = None
    response_headers: dict[str, str] | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "requestId": self.request_id,
            "status": self.status,
            "statusText": self.status_text,
            "contentType": self.content_type,
            "contentSize": self.content_size,
            "actualSize": self.actual_size,
            "processed": self.processed,
            "textSize": self.text_size,
            "data": self.data,
            "summary": self.summary,
            "matches": [m.to_dict() for m in self.matches] if self.matches is not None else None,
            "rawPreview": self.raw_preview,
            "isComplete": self.is_complete,
            "responseHeaders": self.response_headers,
            "error": self.error,
            "errorCode": self.error_code,
        }
        return {k: v for k, v in payload.items() if v is not None}


@dataclass
class RawChunk:
    """An unprocessed byte-range slice of a fetch record."""
    request_id: str
    url: str
    http_status: int | None
    content_size: int
    start_position: int
    data: bytes
    has_more: bool
    response_headers: dict[str, str] | None
    metadata: dict[str, Any]

    @property
    def data_size(self) -> int:
        return len(self.data)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "requestId": self.request_id,
            "url": self.url,
            "httpStatus": self.http_status,
            "contentSize": self.content_size,
            "startPosition": self.start_position,
            "dataSize": self.data_size,
            "data": self.data.decode("utf-8", errors="replace"),
            "hasMore": self.has_more,
            "responseHeaders": self.response_headers,
            "metadata": self.metadata,
        }
        return {k: v for k, v in payload.items() if v is not None}
