"""Tests for the payload-level operations of CacheRuntime."""

from __future__ import annotations

import asyncio

import httpx

from search_fetch_cache.api import FETCH_NOT_FOUND, SEARCH_ID_NOT_FOUND, SEARCH_NOT_FOUND, CacheRuntime
from search_fetch_cache.config import AppConfig


def _factory(handler):
    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


def _page_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/plain"},
        text="Intro sentence here. Another sentence follows.\nkeyword line\nlast line",
    )


def _runtime(clock, handler=_page_handler, search_handler=None, cfg: AppConfig | None = None) -> CacheRuntime:
    return CacheRuntime(
        cfg,
        clock=clock,
        client_factory=_factory(handler),
        search_client_factory=_factory(search_handler) if search_handler else None,
    )


def _google_items():
    return {
        "items": [
            {"title": "One", "link": "https://one.example", "snippet": "s" * 150},
            {"title": "Two", "link": "https://two.example", "snippet": "short"},
        ]
    }


def test_fetch_payload_round_trips_through_processed_view(clock):
    runtime = _runtime(clock)

    fetched = asyncio.run(runtime.fetch_and_cache("https://example.com/", summarize=True, search="keyword"))
    again = runtime.get_processed_view(fetched["requestId"], summarize=True, search="keyword")

    assert fetched == again
    assert fetched["status"] == 200
    assert fetched["summary"] == "Intro sentence here. Another sentence follows. keyword line"
    assert fetched["matches"][0]["line"] == 2
    assert "error" not in fetched


def test_fetch_rejects_invalid_arguments(clock):
    runtime = _runtime(clock)

    bad_url = asyncio.run(runtime.fetch_and_cache("not-a-url"))
    bad_size = asyncio.run(runtime.fetch_and_cache("https://example.com/", output_size=0))
    bad_timeout = asyncio.run(runtime.fetch_and_cache("https://example.com/", timeout_ms=50))
    bad_option = asyncio.run(runtime.fetch_and_cache("https://example.com/", bogus=True))
    bad_context = asyncio.run(runtime.fetch_and_cache("https://example.com/", context=99))

    for payload in (bad_url, bad_size, bad_timeout, bad_option, bad_context):
        assert payload["error"] is True
        assert payload["kind"] == "validation"
    assert len(runtime.fetch.store_engine) == 0


def test_fetch_network_failure_is_a_result_not_an_error_payload(clock):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    runtime = _runtime(clock, handler=handler)
    payload = asyncio.run(runtime.fetch_and_cache("https://down.example/"))

    assert payload["status"] == 0
    assert payload["statusText"] == "Error"
    assert payload["error"] == "ConnectError: boom"
    assert payload["isComplete"] is True


def test_unknown_ids_return_not_found_payloads(clock):
    runtime = _runtime(clock)

    assert runtime.get_search_by_id("nope") == {
        "error": True,
        "kind": "not_found",
        "message": SEARCH_ID_NOT_FOUND,
        "searchId": "nope",
    }
    assert runtime.get_result_by_id("nope")["message"] == SEARCH_NOT_FOUND
    assert runtime.get_processed_view("nope")["message"] == FETCH_NOT_FOUND
    assert runtime.get_raw_chunk("nope")["kind"] == "not_found"
    assert runtime.get_fetch_meta("nope")["kind"] == "not_found"


def test_raw_chunk_and_history_validate_ranges(clock):
    runtime = _runtime(clock)

    assert runtime.get_raw_chunk("id", size=0)["kind"] == "validation"
    assert runtime.get_raw_chunk("id", start_position=-1)["kind"] == "validation"
    assert runtime.list_search_history(limit=101)["kind"] == "validation"
    assert runtime.list_fetch_history(page=0)["kind"] == "validation"


def test_raw_chunk_payload(clock):
    runtime = _runtime(clock)
    fetched = asyncio.run(runtime.fetch_and_cache("https://example.com/"))

    chunk = runtime.get_raw_chunk(fetched["requestId"], start_position=0, size=5)

    assert chunk["data"] == "Intro"
    assert chunk["dataSize"] == 5
    assert chunk["hasMore"] is True
    assert "responseHeaders" not in chunk


def test_store_search_and_lookup(clock):
    runtime = _runtime(clock)

    summary = runtime.store_search("query", _google_items()["items"])
    record = runtime.get_search_by_id(summary["searchId"])
    result = runtime.get_result_by_id(summary["results"][0]["resultId"])
    history = runtime.list_search_history(keyword="QUE")

    assert summary["resultCount"] == 2
    assert summary["results"][0]["snippet"] == "s" * 100 + "..."
    assert record["query"] == "query"
    assert result["snippet"] == "s" * 150
    assert history["totalCount"] == 1


def test_google_search_caches_items(clock):
    seen = {}

    def search_handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json=_google_items())

    cfg = AppConfig()
    cfg.search.api_key = "key-123"
    cfg.search.cx = "cx-456"
    runtime = _runtime(clock, search_handler=search_handler, cfg=cfg)

    summary = asyncio.run(runtime.google_search("rust async", num_results=2, language="en"))

    assert seen["q"] == "rust async"
    assert seen["key"] == "key-123"
    assert seen["cx"] == "cx-456"
    assert seen["num"] == "2"
    assert seen["lr"] == "lang_en"
    assert summary["resultCount"] == 2
    assert runtime.get_search_by_id(summary["searchId"])["query"] == "rust async"


def test_google_search_without_credentials(clock, monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_CX", raising=False)
    runtime = _runtime(clock)

    payload = asyncio.run(runtime.google_search("anything"))

    assert payload["kind"] == "validation"
    assert "GOOGLE_API_KEY" in payload["message"]


def test_google_search_rejects_bad_options(clock):
    cfg = AppConfig()
    cfg.search.api_key = "k"
    cfg.search.cx = "c"
    runtime = _runtime(clock, cfg=cfg)

    assert asyncio.run(runtime.google_search("q", num_results=11))["kind"] == "validation"
    assert asyncio.run(runtime.google_search("q", language="xx"))["kind"] == "validation"


def test_google_search_upstream_failure(clock):
    def search_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"message": "quota"}})

    cfg = AppConfig()
    cfg.search.api_key = "k"
    cfg.search.cx = "c"
    runtime = _runtime(clock, search_handler=search_handler, cfg=cfg)

    payload = asyncio.run(runtime.google_search("q"))

    assert payload["kind"] == "network"
    assert "HTTP 403" in payload["message"]
    assert runtime.list_search_history()["totalCount"] == 0


def test_unexpected_failure_becomes_internal_payload(clock, monkeypatch):
    runtime = _runtime(clock)

    def broken(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(runtime.search, "store", broken)

    payload = runtime.store_search("q", [])

    assert payload == {"error": True, "kind": "internal", "message": "Failed to complete store_search"}


def test_context_manager_runs_sweepers(clock):
    with _runtime(clock) as runtime:
        assert runtime.search.store_engine._sweeper.is_alive()  # noqa: SLF001
        assert runtime.fetch.store_engine._sweeper.is_alive()  # noqa: SLF001

    assert runtime.search.store_engine._sweeper is None  # noqa: SLF001
    assert runtime.fetch.store_engine._sweeper is None  # noqa: SLF001
