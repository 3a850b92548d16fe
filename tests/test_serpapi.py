from __future__ import annotations

import asyncio

import httpx
import pytest

from dailyscan.discovery.serpapi import SearchParams, SerpApiClient, parse_organic_results
from dailyscan.errors import (
    MissingKeyError,
    RateLimitedError,
    SearchError,
    SearchHttpError,
    SearchNetworkError,
)


def _organic(start: int, count: int) -> dict:
    return {
        "organic_results": [
            {"title": f"Result {index}", "link": f"https://example.com/{index}", "snippet": f"About {index}"}
            for index in range(start, start + count)
        ]
    }


def _client(handler) -> SerpApiClient:
    return SerpApiClient(api_key="test-key", transport=httpx.MockTransport(handler))


def test_search_pages_until_count() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        start = int(request.url.params["start"])
        num = int(request.url.params["num"])
        return httpx.Response(200, json=_organic(start, num))

    results = asyncio.run(_client(handler).search("tide tables", 15))

    assert len(results) == 15
    assert results[0].title == "Result 0"
    assert results[14].url == "https://example.com/14"
    assert [(r.url.params["start"], r.url.params["num"]) for r in requests] == [("0", "10"), ("10", "5")]
    first = requests[0].url.params
    assert first["q"] == "tide tables"
    assert first["engine"] == "google"
    assert first["api_key"] == "test-key"
    assert first["hl"] == "en"
    assert first["gl"] == "us"


def test_short_page_stops_paging() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200, json=_organic(0, 3))

    results = asyncio.run(_client(handler).search("q", 25))

    assert len(results) == 3
    assert len(calls) == 1


def test_empty_results_are_not_an_error() -> None:
    results = asyncio.run(_client(lambda request: httpx.Response(200, json={})).search("q", 10))
    assert results == []


def test_missing_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
    with pytest.raises(MissingKeyError, match="SERPAPI_API_KEY"):
        asyncio.run(SerpApiClient().search("q", 10))


def test_key_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERPAPI_API_KEY", "env-key")
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["api_key"])
        return httpx.Response(200, json=_organic(0, 1))

    asyncio.run(SerpApiClient(transport=httpx.MockTransport(handler)).search("q", 1))
    assert seen == ["env-key"]


def test_rate_limit() -> None:
    with pytest.raises(RateLimitedError):
        asyncio.run(_client(lambda request: httpx.Response(429)).search("q", 10))


def test_http_error() -> None:
    with pytest.raises(SearchHttpError) as excinfo:
        asyncio.run(_client(lambda request: httpx.Response(500)).search("q", 10))
    assert excinfo.value.status_code == 500


def test_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(SearchNetworkError):
        asyncio.run(_client(handler).search("q", 10))


def test_undecodable_body() -> None:
    with pytest.raises(SearchError, match="decoded"):
        asyncio.run(_client(lambda request: httpx.Response(200, content=b"<html>")).search("q", 10))


def test_parse_organic_results_skips_items_without_link() -> None:
    results = parse_organic_results(
        {"organic_results": [{"title": "No link"}, {"title": " T ", "link": "https://x.test/a"}, "junk"]}
    )
    assert [(result.title, result.url, result.snippet) for result in results] == [
        ("T", "https://x.test/a", "")
    ]


def test_parse_organic_results_reports_api_error() -> None:
    with pytest.raises(SearchError, match="Invalid API key"):
        parse_organic_results({"error": "Invalid API key"})


def test_search_params_only_include_set_values() -> None:
    assert SearchParams(hl="de", gl="de", tbs="qdr:d").as_query() == {"hl": "de", "gl": "de", "tbs": "qdr:d"}


def test_repeated_urls_across_pages_are_dropped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        start = int(request.url.params["start"])
        items = _organic(start, int(request.url.params["num"]))["organic_results"]
        if start == 10:
            items[0]["link"] = "https://example.com/3?utm_source=serp#top"
        return httpx.Response(200, json={"organic_results": items})

    results = asyncio.run(_client(handler).search("q", 20))

    urls = [result.url for result in results]
    assert len(urls) == 20
    assert urls[-1] == "https://example.com/20"
    assert "https://example.com/3?utm_source=serp#top" not in urls
