from __future__ import annotations

import asyncio
import errno
import sys

import httpx
import pytest

from search_fetch_cache.errors import (
    ErrorKind,
    FetchTimeoutError,
    NetworkError,
    ValidationError,
    classify_fetch_exception,
    error_payload,
    extract_error_code,
)


class CodedError(Exception):
    def __init__(self, code):
        super().__init__("coded")
        self.code = code


def _chain(outer: BaseException, cause: BaseException) -> BaseException:
    outer.__cause__ = cause
    return outer


def test_timeouts_map_to_timeout_code():
    assert extract_error_code(asyncio.TimeoutError()) == "ETIMEDOUT"
    assert extract_error_code(httpx.ConnectTimeout("slow")) == "ETIMEDOUT"


def test_explicit_code_is_used():
    assert extract_error_code(CodedError("ECONNRESET")) == "ECONNRESET"


def test_errno_is_mapped_to_symbolic_name():
    assert extract_error_code(OSError(errno.ENOENT, "missing")) == "ENOENT"


def test_own_code_wins_over_nested_cause():
    exc = _chain(CodedError("EPIPE"), OSError(errno.ECONNREFUSED, "refused"))

    assert extract_error_code(exc) == "EPIPE"


def test_nested_cause_is_consulted():
    exc = _chain(httpx.ConnectError("failed"), OSError(errno.ECONNREFUSED, "refused"))

    assert extract_error_code(exc) == "ECONNREFUSED"


def test_nested_timeout_wins_over_nested_code():
    exc = _chain(RuntimeError("wrapped"), TimeoutError())

    assert extract_error_code(exc) == "ETIMEDOUT"


def test_code_found_deep_in_the_chain():
    refused = OSError(errno.ECONNREFUSED, "Connection refused")
    attempts = _chain(OSError("All connection attempts failed"), refused)
    transport = _chain(RuntimeError("transport failed"), attempts)
    exc = _chain(httpx.ConnectError("All connection attempts failed"), transport)

    assert extract_error_code(exc) == "ECONNREFUSED"


def test_deep_timeout_wins_over_shallow_code():
    inner = _chain(RuntimeError("inner"), asyncio.TimeoutError())
    exc = _chain(CodedError("ECONNRESET"), _chain(RuntimeError("middle"), inner))

    assert extract_error_code(exc) == "ETIMEDOUT"


def test_implicit_context_is_followed():
    try:
        try:
            raise OSError(errno.EHOSTUNREACH, "unreachable")
        except OSError:
            raise RuntimeError("while connecting")
    except RuntimeError as exc:
        assert extract_error_code(exc) == "EHOSTUNREACH"


def test_cyclic_chain_terminates():
    first = RuntimeError("first")
    second = RuntimeError("second")
    first.__cause__ = second
    second.__cause__ = first

    assert extract_error_code(first) is None


@pytest.mark.skipif(sys.version_info < (3, 11), reason="exception groups need Python 3.11")
def test_exception_group_members_are_searched():
    group = ExceptionGroup("attempts", [ValueError("bad"), OSError(errno.ECONNREFUSED, "refused")])  # noqa: F821
    exc = _chain(httpx.ConnectError("failed"), group)

    assert extract_error_code(exc) == "ECONNREFUSED"


def test_no_code_available():
    assert extract_error_code(ValueError("plain")) is None


def test_classify_timeout():
    err = classify_fetch_exception(asyncio.TimeoutError(), timeout_ms=250)

    assert isinstance(err, FetchTimeoutError)
    assert err.kind is ErrorKind.TIMEOUT
    assert err.message == "Request timed out after 250ms"
    assert err.code == "ETIMEDOUT"


def test_classify_network_failure():
    err = classify_fetch_exception(_chain(httpx.ConnectError("refused"), OSError(errno.ECONNREFUSED, "x")))

    assert type(err) is NetworkError
    assert err.message == "ConnectError: refused"
    assert err.code == "ECONNREFUSED"


def test_payloads_drop_empty_fields():
    assert error_payload(ErrorKind.NOT_FOUND, "gone", requestId="r1", code=None) == {
        "error": True,
        "kind": "not_found",
        "message": "gone",
        "requestId": "r1",
    }
    assert ValidationError("bad").to_payload() == {"error": True, "kind": "validation", "message": "bad"}
