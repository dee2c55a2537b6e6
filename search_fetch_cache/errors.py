"""
Error taxonomy and classification helpers.

Every failure is classified once, at the site where it happens, into an
ErrorKind. Downstream code only reads the kind, message and code carried
by the CacheError; it never re-inspects the original exception.
"""

from __future__ import annotations

import asyncio
from collections import deque
import errno
from enum import Enum
from typing import Any, Iterator

import httpx


TIMEOUT_CODE = "ETIMEDOUT"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    TIMEOUT = "timeout"
    UPSTREAM_HTTP = "upstream_http"
    INTERNAL = "internal"


class CacheError(Exception):
    """Base error carrying a classified kind, a message and an optional code."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_payload(self) -> dict[str, Any]:
        return error_payload(self.kind, self.message, code=self.code)


class ValidationError(CacheError):
    kind = ErrorKind.VALIDATION


class NetworkError(CacheError):
    kind = ErrorKind.NETWORK


class FetchTimeoutError(NetworkError):
    kind = ErrorKind.TIMEOUT


def error_payload(kind: ErrorKind, message: str, **fields: Any) -> dict[str, Any]:
    """Build the structured `{error: True, ...}` payload returned to callers."""
    payload: dict[str, Any] = {"error": True, "kind": kind.value, "message": message}
    for key, value in fields.items():
        if value is not None:
            payload[key] = value
    return payload


def is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))


def extract_error_code(exc: BaseException) -> str | None:
    """Extract a platform error code from an exception.

    Precedence: timeout/abort anywhere in the chain > explicit code on the
    exception > the first code found on nested causes > None. The whole
    ``__cause__``/``__context__`` chain is walked, outermost first, along with
    the members of exception groups.
    """
    chain = list(_walk_chain(exc))
    if any(is_timeout(link) for link in chain):
        return TIMEOUT_CODE
    for link in chain:
        code = _own_code(link)
        if code:
            return code
    return None


def _walk_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    queue: deque[BaseException] = deque([exc])
    while queue:
        link = queue.popleft()
        if id(link) in seen:
            continue
        seen.add(id(link))
        yield link
        for nested in (link.__cause__, link.__context__):
            if nested is not None:
                queue.append(nested)
        members = getattr(link, "exceptions", None)
        if isinstance(members, (list, tuple)):
            queue.extend(m for m in members if isinstance(m, BaseException))


def _own_code(exc: BaseException) -> str | None:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code
    number = getattr(exc, "errno", None)
    if isinstance(number, int):
        return errno.errorcode.get(number, str(number))
    return None


def classify_fetch_exception(exc: BaseException, timeout_ms: int | None = None) -> NetworkError:
    """Turn an exception raised while fetching into a NetworkError or FetchTimeoutError."""
    code = extract_error_code(exc)
    if code == TIMEOUT_CODE:
        if timeout_ms is not None:
            return FetchTimeoutError(f"Request timed out after {timeout_ms}ms", code=code)
        return FetchTimeoutError(f"Request timed out: {exc}", code=code)
    message = str(exc) or type(exc).__name__
    return NetworkError(f"{type(exc).__name__}: {message}", code=code)
