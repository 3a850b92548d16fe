from __future__ import annotations

import asyncio

import httpx
import pytest

from dailyscan.cancellation import CancellationToken
from dailyscan.config import FetchConfig
from dailyscan.errors import Cancelled, InvalidInputError, PermanentHttpError, TransientNetworkError
from dailyscan.fetchers.http import HttpFetcher, is_transient_status

FAST = FetchConfig(backoff_base=0.0)


def _fetcher(handler, config: FetchConfig = FAST) -> HttpFetcher:
    return HttpFetcher(config=config, transport=httpx.MockTransport(handler))


def test_fetch_returns_bytes_and_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            content="<p>héllo</p>".encode("utf-8"),
            headers={"content-type": "text/html; charset=utf-8"},
        )

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/a"))

    assert result.status_code == 200
    assert result.content == "<p>héllo</p>".encode("utf-8")
    assert result.content_type == "text/html; charset=utf-8"
    assert result.final_url == "https://example.com/a"
    assert result.attempts == 1
    assert seen[0].headers["user-agent"].startswith("Mozilla/5.0")
    assert "text/html" in seen[0].headers["accept"]
    assert seen[0].headers["accept-language"]


def test_transient_status_is_retried() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, content=b"ok")

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/flaky"))

    assert len(calls) == 3
    assert result.attempts == 3
    assert result.content == b"ok"


def test_retries_stop_after_max_attempts() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(429)

    with pytest.raises(TransientNetworkError) as excinfo:
        asyncio.run(_fetcher(handler).fetch("https://example.com/busy"))

    assert len(calls) == 3
    assert excinfo.value.status_code == 429


def test_permanent_status_is_not_retried() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(404)

    with pytest.raises(PermanentHttpError, match="HTTP 404") as excinfo:
        asyncio.run(_fetcher(handler).fetch("https://example.com/missing"))

    assert len(calls) == 1
    assert excinfo.value.status_code == 404
    assert excinfo.value.error_class == "permanent_http"


def test_transport_errors_are_transient() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientNetworkError, match="ConnectError"):
        asyncio.run(_fetcher(handler, FetchConfig(backoff_base=0.0, max_attempts=2)).fetch("https://example.com"))

    assert len(calls) == 2


def test_unsupported_protocol_is_invalid_input() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.UnsupportedProtocol("no adapter", request=request)

    with pytest.raises(InvalidInputError):
        asyncio.run(_fetcher(handler).fetch("https://example.com"))


def test_cancelled_token_prevents_fetch() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200)

    token = CancellationToken()
    token.cancel()
    with pytest.raises(Cancelled):
        asyncio.run(_fetcher(handler).fetch("https://example.com", token))
    assert calls == []


@pytest.mark.parametrize(
    ("status", "transient"),
    [(200, False), (404, False), (410, False), (429, True), (500, True), (503, True)],
)
def test_is_transient_status(status: int, transient: bool) -> None:
    assert is_transient_status(status) is transient
