from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from dailyscan.discovery.url_utils import canonicalise_url
from dailyscan.errors import (
    MissingKeyError,
    RateLimitedError,
    SearchError,
    SearchHttpError,
    SearchNetworkError,
)
from dailyscan.models import SearchResult

SERPAPI_ENDPOINT = "https://serpapi.com/search.json"
PAGE_SIZE = 10


class SearchProvider(Protocol):
    async def search(self, query: str, count: int) -> list[SearchResult]:
        ...


@dataclass(frozen=True)
class SearchParams:
    hl: str = "en"
    gl: str = "us"
    location: str | None = None
    safe: str | None = None
    tbm: str | None = None
    tbs: str | None = None
    as_qdr: str | None = None

    def as_query(self) -> dict[str, str]:
        params = {"hl": self.hl, "gl": self.gl}
        for name in ("location", "safe", "tbm", "tbs", "as_qdr"):
            value = getattr(self, name)
            if value:
                params[name] = value
        return params


@dataclass
class SerpApiClient:
    """Google organic results through SerpAPI, paged ten at a time."""

    api_key: str | None = None
    params: SearchParams = field(default_factory=SearchParams)
    endpoint: str = SERPAPI_ENDPOINT
    timeout: float = 20.0
    transport: httpx.AsyncBaseTransport | None = None

    def _resolve_api_key(self) -> str:
        key = self.api_key or os.environ.get("SERPAPI_API_KEY", "")
        if not key.strip():
            raise MissingKeyError("SERPAPI_API_KEY")
        return key.strip()

    async def search(self, query: str, count: int = PAGE_SIZE) -> list[SearchResult]:
        key = self._resolve_api_key()
        results: list[SearchResult] = []
        seen: set[str] = set()
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            start = 0
            while len(results) < count:
                page_count = min(PAGE_SIZE, count - len(results))
                page = await self._fetch_page(client, key, query, start, page_count)
                added = 0
                for item in page:
                    canonical = canonicalise_url(item.url)
                    if canonical not in seen:
                        seen.add(canonical)
                        results.append(item)
                        added += 1
                if len(page) < page_count or not added:
                    break
                start += PAGE_SIZE
        return results[:count]

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        key: str,
        query: str,
        start: int,
        count: int,
    ) -> list[SearchResult]:
        query_params = {
            "q": query,
            "engine": "google",
            "api_key": key,
            "num": str(count),
            "start": str(start),
            **self.params.as_query(),
        }
        try:
            response = await client.get(self.endpoint, params=query_params)
        except httpx.TimeoutException as exc:
            raise SearchNetworkError("Connection timeout to the search API") from exc
        except httpx.TransportError as exc:
            raise SearchNetworkError(f"Network error: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError()
        if not 200 <= response.status_code < 300:
            raise SearchHttpError(response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise SearchError("Search API response could not be decoded") from exc
        return parse_organic_results(data)


def parse_organic_results(data: Any) -> list[SearchResult]:
    if not isinstance(data, dict):
        raise SearchError("Search API response could not be decoded")
    organic = data.get("organic_results")
    if organic is None and data.get("error"):
        raise SearchError(f"Search API error: {data['error']}")
    results: list[SearchResult] = []
    for item in organic or []:
        if not isinstance(item, dict):
            continue
        link = str(item.get("link") or "").strip()
        if not link:
            continue
        results.append(
            SearchResult(
                title=str(item.get("title") or "").strip(),
                url=link,
                snippet=str(item.get("snippet") or "").strip(),
            )
        )
    return results
