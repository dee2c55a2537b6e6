"""
Streaming HTTP retrieval into a fetch record.

The fetcher performs a single request (no retries), streams the body
straight into the record's byte buffer, stops reading once the per-entry
cap is reached, and aborts the whole exchange when the timeout lapses.
The response stream is closed on every exit path by the client's context
managers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Callable

import httpx

from ..config import FetchConfig
from ..content.processor import Kind, detect_kind
from ..core.types import FetchRecord
from ..errors import classify_fetch_exception
from ..logging_utils import get_logger, log_event


ClientFactory = Callable[[], httpx.AsyncClient]


@dataclass
class StreamOutcome:
    """What the upstream answered, independent of truncation.

    Attributes:
        http_status: Upstream status code
        status_text: Upstream reason phrase, plus a warning suffix after a cross-host redirect
        content_type: Content-Type header, if any
        kind: Payload kind detected from content_type
        expected_size: Content-Length header, if any
        final_url: URL of the last response after redirects
        truncated: Whether the body was cut at the per-entry cap
        redirect_host: Host of the final response when it differs from the requested one
        response_headers: All response headers
    """
    http_status: int
    status_text: str
    content_type: str | None
    kind: Kind
    expected_size: int | None
    final_url: str
    truncated: bool = False
    redirect_host: str | None = None
    response_headers: dict[str, str] = field(default_factory=dict)


def default_client_factory(cfg: FetchConfig) -> ClientFactory:
    """Build a factory for the AsyncClient used per request."""

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": cfg.user_agent},
            follow_redirects=cfg.follow_redirects,
            trust_env=cfg.trust_env,
            timeout=None,
        )

    return factory


async def stream_into(
    record: FetchRecord,
    client_factory: ClientFactory,
    max_bytes: int,
    timeout_ms: int,
    logger: logging.Logger | None = None,
) -> StreamOutcome:
    """Stream record.url into record.data.

    Args:
        record: The in-progress record; its data buffer is appended to
        client_factory: Returns a fresh AsyncClient, closed after the request
        max_bytes: Per-entry cap; bytes past it are never read
        timeout_ms: Deadline for the whole exchange, body included
        logger: Logger for fetch events

    Returns:
        StreamOutcome describing the upstream response

    Raises:
        NetworkError: Connection, DNS or protocol failure
        FetchTimeoutError: The deadline lapsed before the body was read
    """
    logger = logger or get_logger("fetch")
    try:
        return await asyncio.wait_for(
            _stream(record, client_factory, max_bytes, logger),
            timeout=timeout_ms / 1000,
        )
    except (httpx.HTTPError, httpx.InvalidURL, OSError, asyncio.TimeoutError) as exc:
        raise classify_fetch_exception(exc, timeout_ms) from exc


async def _stream(
    record: FetchRecord,
    client_factory: ClientFactory,
    max_bytes: int,
    logger: logging.Logger,
) -> StreamOutcome:
    async with client_factory() as client:
        async with client.stream(record.method, record.url, headers=record.headers) as response:
            outcome = _describe(record.url, response)
            record.http_status = outcome.http_status
            record.status_text = outcome.status_text
            record.content_type = outcome.content_type
            record.expected_size = outcome.expected_size
            record.response_headers = outcome.response_headers
            if outcome.redirect_host:
                log_event(
                    logger,
                    f"Redirected to different host: {outcome.redirect_host}",
                    level=logging.WARNING,
                    event="fetch_redirect_host",
                    request_id=record.request_id,
                    final_url=outcome.final_url,
                )

            async for chunk in response.aiter_bytes():
                remaining = max_bytes - len(record.data)
                if len(chunk) > remaining:
                    record.data.extend(chunk[:remaining])
                    record.fetched_size = len(record.data)
                    outcome.truncated = True
                    log_event(
                        logger,
                        f"File size limit exceeded for {record.request_id}: "
                        f"{len(record.data) - remaining + len(chunk)} > {max_bytes}",
                        level=logging.WARNING,
                        event="fetch_truncated",
                        request_id=record.request_id,
                        max_bytes=max_bytes,
                    )
                    break
                record.data.extend(chunk)
                record.fetched_size = len(record.data)

    return outcome


def _describe(requested_url: str, response: httpx.Response) -> StreamOutcome:
    content_type = response.headers.get("content-type")
    status_text = response.reason_phrase
    final_url = str(response.url)

    requested_host = httpx.URL(requested_url).host
    final_host = response.url.host
    redirect_host = None
    if final_host and requested_host and final_host != requested_host:
        redirect_host = final_host
        status_text = f"{status_text} (warning: redirected to different host {final_host})"

    return StreamOutcome(
        http_status=response.status_code,
        status_text=status_text,
        content_type=content_type,
        kind=detect_kind(content_type),
        expected_size=_content_length(response.headers.get("content-length")),
        final_url=final_url,
        redirect_host=redirect_host,
        response_headers=dict(response.headers.items()),
    )


def _content_length(value: str | None) -> int | None:
    if not value:
        return None
    try:
        size = int(value)
    except ValueError:
        return None
    return size if size >= 0 else None
