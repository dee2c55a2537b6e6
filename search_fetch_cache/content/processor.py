"""
Stateless content processing applied to cached payloads.

- detect_kind: Map a Content-Type header to a payload kind
- to_text: Turn raw bytes into plain text according to the kind
- summarize: Extractive summary built from the leading sentences
- grep_like: Line-oriented pattern search with context and match ranges
- build_view: Render a FetchRecord into a FetchResult for given options

None of these functions raise on bad input: text conversion degrades to an
empty string and an invalid pattern degrades to no matches.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Literal

from ..config import ExtractConfig
from ..core.types import FetchRecord, FetchResult, GrepMatch, MatchRange, ProcessingOptions
from .extractor import extract_text


Kind = Literal["html", "text", "json", "xml", "binary"]

ELLIPSIS = "…"
MAX_RANGES_PER_LINE = 2000

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[。．！？])\s*|(?<=[.!?])\s+|\n+")
_LINE_SPLIT_RE = re.compile(r"\r?\n")

logger = logging.getLogger("search_fetch_cache.content")


def detect_kind(content_type: str | None) -> Kind:
    if not content_type:
        return "binary"
    ct = content_type.lower()
    if "text/html" in ct or "application/xhtml+xml" in ct:
        return "html"
    if ct.startswith("text/"):
        return "text"
    if "application/json" in ct:
        return "json"
    if "application/xml" in ct:
        return "xml"
    return "binary"


def to_text(data: bytes, kind: Kind, extract: ExtractConfig | None = None) -> str:
    """Convert a raw payload to plain text; any failure yields an empty string."""
    try:
        if kind == "html":
            cfg = extract or ExtractConfig()
            return extract_text(_decode(data), cfg.primary, cfg.fallback) or ""
        if kind == "json":
            raw = _decode(data)
            try:
                return json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
            except ValueError:
                return raw
        if kind in ("text", "xml"):
            return _decode(data)
        return ""
    except Exception:  # noqa: BLE001
        logger.warning("Text conversion failed for kind %s", kind, exc_info=True)
        return ""


def summarize(text: str, max_sentences: int = 3, max_chars: int = 500) -> str:
    """Pick the first qualifying sentences of text, capped at max_chars."""
    if not text:
        return ""

    selected: list[str] = []
    for part in _SENTENCE_SPLIT_RE.split(text):
        if len(selected) >= max_sentences:
            break
        sentence = part.strip()
        # skip noise such as bullets and stray punctuation
        if len("".join(sentence.split())) < 3:
            continue
        selected.append(sentence)

    summary = " ".join(selected)
    if len(summary) > max_chars:
        summary = summary[: max(max_chars - 1, 0)] + ELLIPSIS
    return summary


def grep_like(
    text: str,
    pattern: str,
    is_regex: bool = False,
    case_sensitive: bool = False,
    before: int | None = None,
    after: int | None = None,
    context: int = 2,
    max_matches: int = 20,
) -> list[GrepMatch]:
    """Search text line by line, like ``grep -C``.

    Args:
        text: Text to search
        pattern: Literal string, or a regular expression when is_regex is set
        is_regex: Compile pattern as-is instead of escaping it
        case_sensitive: Match case
        before: Context lines before each match (defaults to context)
        after: Context lines after each match (defaults to context)
        context: Symmetric context used when before/after are not given
        max_matches: Stop after this many matching lines

    Returns:
        Matching lines in order. An invalid pattern returns an empty list.
    """
    if not text or not pattern or max_matches <= 0:
        return []

    source = pattern if is_regex else re.escape(pattern)
    try:
        regex = re.compile(source, 0 if case_sensitive else re.IGNORECASE)
    except re.error:
        return []

    lines = _LINE_SPLIT_RE.split(text)
    n_before = context if before is None else before
    n_after = context if after is None else after
    matches: list[GrepMatch] = []

    for idx, line in enumerate(lines):
        if regex.search(line) is None:
            continue

        start = max(0, idx - n_before)
        end = min(len(lines) - 1, idx + n_after)
        before_lines = lines[start:idx]
        after_lines = lines[idx + 1 : end + 1]
        matches.append(
            GrepMatch(
                line=idx + 1,
                match=line,
                preview="\n".join(before_lines + [line] + after_lines),
                before=before_lines,
                after=after_lines,
                ranges=_collect_ranges(line, regex),
            )
        )
        if len(matches) >= max_matches:
            break

    return matches


def _collect_ranges(line: str, regex: re.Pattern[str]) -> list[MatchRange]:
    ranges: list[MatchRange] = []
    # finditer steps past zero-width matches on its own; they carry no range
    for m in regex.finditer(line):
        if len(ranges) >= MAX_RANGES_PER_LINE:
            break
        if m.end() > m.start():
            ranges.append(MatchRange(start=m.start(), end=m.end()))
    return ranges


def build_view(
    record: FetchRecord,
    options: ProcessingOptions,
    include_headers: bool = False,
    extract: ExtractConfig | None = None,
) -> FetchResult:
    """Render a fetch record into a FetchResult.

    The record's stored bytes are only read, so identical inputs always
    produce identical views.
    """
    raw = bytes(record.data)
    kind = detect_kind(record.content_type)
    text = to_text(raw, kind, extract) if options.process and kind != "binary" else ""
    processed = bool(text)

    if processed:
        data = text[: options.output_size]
        is_complete = len(data) == len(text)
        searchable = text
    else:
        data = _decode(raw[: options.output_size])
        is_complete = options.output_size >= len(raw)
        searchable = _decode(raw) if options.search else ""

    summary = None
    if options.summarize and processed:
        summary = summarize(text, options.summary_max_sentences, options.summary_max_chars)

    matches = None
    if options.search:
        matches = grep_like(
            searchable,
            options.search,
            is_regex=options.search_is_regex,
            case_sensitive=options.case_sensitive,
            before=options.before,
            after=options.after,
            context=options.context,
            max_matches=options.max_matches,
        )

    raw_preview = None
    if options.include_raw_preview:
        raw_preview = _decode(raw[: options.raw_preview_size])

    return FetchResult(
        request_id=record.request_id,
        status=record.http_status or 0,
        status_text=record.status_text or "",
        content_type=record.content_type,
        content_size=record.expected_size,
        actual_size=record.fetched_size,
        processed=processed,
        text_size=len(text) if processed else None,
        data=data,
        summary=summary,
        matches=matches,
        raw_preview=raw_preview,
        is_complete=is_complete,
        response_headers=record.response_headers if include_headers else None,
        error=record.error,
        error_code=record.error_code,
    )


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")
