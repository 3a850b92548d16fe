from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from dailyscan.cancellation import CancellationToken
from dailyscan.config import DEFAULT_USER_AGENT, FetchConfig
from dailyscan.errors import InvalidInputError, PermanentHttpError, TransientNetworkError
from dailyscan.models import FetchResult

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class Fetcher(Protocol):
    async def fetch(self, url: str, token: CancellationToken | None = None) -> FetchResult:
        ...


def browser_headers(
    user_agent: str = DEFAULT_USER_AGENT,
    accept_language: str = "en-US,en;q=0.9",
) -> dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": ACCEPT_HTML,
        "Accept-Language": accept_language,
    }


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def check_status(url: str, response: httpx.Response) -> None:
    status = response.status_code
    if is_transient_status(status):
        raise TransientNetworkError(f"HTTP {status}", url=url, status_code=status)
    if status >= 400:
        raise PermanentHttpError(url, status)


@dataclass
class HttpFetcher:
    """Async page fetcher: 429, 5xx and transport errors are retried with backoff."""

    config: FetchConfig = field(default_factory=FetchConfig)
    transport: httpx.AsyncBaseTransport | None = None
    fetcher_name: str = "httpx"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.timeout,
            headers=browser_headers(self.config.user_agent, self.config.accept_language),
            follow_redirects=True,
            transport=self.transport,
        )

    def _retrying(self, token: CancellationToken) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.backoff_base,
                exp_base=self.config.backoff_factor,
            ),
            retry=retry_if_exception_type(TransientNetworkError),
            sleep=token.sleep,
            reraise=True,
        )

    async def fetch(self, url: str, token: CancellationToken | None = None) -> FetchResult:
        token = token or CancellationToken()
        token.raise_if_cancelled()
        started = _utc_now()
        attempts = 0
        async with self._client() as client:
            async for attempt in self._retrying(token):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._get(client, url, token)
        return FetchResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("content-type"),
            fetched_at=started,
            elapsed_ms=int((_utc_now() - started).total_seconds() * 1000),
            attempts=attempts,
        )

    async def _get(self, client: httpx.AsyncClient, url: str, token: CancellationToken) -> httpx.Response:
        try:
            response = await token.guard(client.get(url))
        except httpx.UnsupportedProtocol as exc:
            raise InvalidInputError(f"Unsupported URL: {exc}", url=url) from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{type(exc).__name__}: {exc}", url=url) from exc
        token.raise_if_cancelled()
        check_status(url, response)
        return response


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
