from __future__ import annotations

import asyncio
import json
import struct
import zlib
from io import BytesIO
from pathlib import Path

import httpx
import psycopg
import pytest
from PIL import Image

from dailyscan.cancellation import CancellationToken
from dailyscan.discovery.serpapi import SearchParams
from dailyscan.errors import Cancelled, PermanentHttpError, PersistenceError
from dailyscan.extractors.render import RenderPolicy
from dailyscan.fetchers.images import ImageDownloader
from dailyscan.models import FetchResult, ItemState, QualityTier, SearchResult
from dailyscan.pipeline import ScanPipeline
from dailyscan.storage.memory_repo import MemoryRepo
from dailyscan.storage.postgres_repo import PostgresRepo

WORDS = (
    "river stone garden quiet morning bright window table coffee walked "
    "slowly through green field under warm light birds sang softly"
).split()


def _prose(count: int) -> str:
    return " ".join(WORDS[index % len(WORDS)] for index in range(count))


def _page(number: int) -> bytes:
    return (
        f"<html><head><title>Page {number}</title></head><body><nav>menu</nav>"
        f"<article><h1>Heading</h1><p>{_prose(300)}</p></article></body></html>"
    ).encode("utf-8")


def _results(count: int) -> list[SearchResult]:
    return [
        SearchResult(title=f"Result {index}", url=f"https://example.com/p{index}", snippet=f"snippet {index}")
        for index in range(count)
    ]


class StubFetcher:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.errors: dict[str, Exception] = {}
        self.bodies: dict[str, bytes] = {}
        self.delays: dict[str, float] = {}
        self.cancel_on_call: int | None = None

    async def fetch(self, url: str, token: CancellationToken | None = None) -> FetchResult:
        self.calls.append(url)
        if self.cancel_on_call == len(self.calls) and token is not None:
            token.cancel()
        if url in self.errors:
            raise self.errors[url]
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        body = self.bodies.get(url, _page(len(self.calls)))
        return FetchResult(url=url, final_url=url, status_code=200, content=body, content_type="text/html")


class StubSummarizer:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()

    async def summarise(self, snippet: str, title: str, url: str) -> str:
        if url in self.failing:
            raise RuntimeError("model unavailable")
        return f"summary of {title}"


def _events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_batch_persists_every_item() -> None:
    repo = MemoryRepo()
    pipeline = ScanPipeline(fetcher=StubFetcher(), repository=repo, summarizer=StubSummarizer())

    result = asyncio.run(pipeline.run_batch(_results(3)))

    assert [outcome.state for outcome in result.outcomes] == [ItemState.PERSISTED] * 3
    assert len(repo.records) == 3
    record = result.records[0]
    assert record.title == "Page 1"
    assert record.summary == "summary of Result 0"
    assert record.verdict.tier is QualityTier.MEDIUM
    assert "menu" not in record.extraction.main_text
    assert result.summary.coverage == 1.0
    assert result.warnings == []


def test_summary_failure_falls_back_to_snippet() -> None:
    results = _results(5)
    repo = MemoryRepo()
    pipeline = ScanPipeline(
        fetcher=StubFetcher(),
        repository=repo,
        summarizer=StubSummarizer(failing={results[2].url}),
    )

    result = asyncio.run(pipeline.run_batch(results))

    assert len(result.records) == 5
    assert result.records[2].summary == "snippet 2"
    assert result.outcomes[2].degraded
    assert result.records[1].summary == "summary of Result 1"
    assert not result.outcomes[1].degraded
    assert result.metrics.degraded == 1
    assert result.metrics.failed == 0


def test_summaries_disabled_use_snippet() -> None:
    pipeline = ScanPipeline(fetcher=StubFetcher(), repository=MemoryRepo())

    result = asyncio.run(pipeline.run_batch(_results(1)))

    assert result.records[0].summary == "snippet 0"
    assert not result.outcomes[0].degraded


def test_cancel_mid_batch_keeps_completed_records(tmp_path: Path) -> None:
    repo = MemoryRepo()
    fetcher = StubFetcher()
    fetcher.cancel_on_call = 4
    events_path = tmp_path / "events.jsonl"
    pipeline = ScanPipeline(fetcher=fetcher, repository=repo, events_path=events_path)

    async def main() -> None:
        await pipeline.run_batch(_results(10), CancellationToken())

    with pytest.raises(Cancelled):
        asyncio.run(main())

    assert len(repo.records) == 3
    assert len(fetcher.calls) == 4
    cancelled = [event for event in _events(events_path) if event["event"] == "batch_cancelled"]
    assert cancelled[0]["persisted"] == 3


def test_new_batch_cancels_the_one_in_flight() -> None:
    repo = MemoryRepo()

    class BlockingFetcher(StubFetcher):
        def __init__(self) -> None:
            super().__init__()
            self.entered: asyncio.Event | None = None

        async def fetch(self, url: str, token: CancellationToken | None = None) -> FetchResult:
            if "slow" in url and token is not None:
                assert self.entered is not None
                self.entered.set()
                await token.guard(asyncio.Event().wait())
            return await super().fetch(url, token)

    fetcher = BlockingFetcher()
    pipeline = ScanPipeline(fetcher=fetcher, repository=repo)

    async def main() -> None:
        fetcher.entered = asyncio.Event()
        first = asyncio.create_task(
            pipeline.run_batch([SearchResult(title="slow", url="https://example.com/slow")])
        )
        await fetcher.entered.wait()
        second = await pipeline.run_batch(_results(1))
        assert len(second.records) == 1
        with pytest.raises(Cancelled):
            await first

    asyncio.run(main())
    assert len(repo.records) == 1


def test_concurrent_batch_keeps_input_order() -> None:
    fetcher = StubFetcher()
    results = _results(5)
    for index, item in enumerate(results):
        fetcher.delays[item.url] = 0.05 - index * 0.01
    repo = MemoryRepo()
    pipeline = ScanPipeline(fetcher=fetcher, repository=repo, concurrency=4)

    result = asyncio.run(pipeline.run_batch(results))

    assert [outcome.index for outcome in result.outcomes] == [0, 1, 2, 3, 4]
    assert [record.url for record in result.records] == [item.url for item in results]
    assert len(repo.records) == 5


def test_encoding_failure_is_isolated(tmp_path: Path) -> None:
    results = _results(3)
    fetcher = StubFetcher()
    fetcher.bodies[results[1].url] = b"<p>caf\xc3\x28</p>"
    events_path = tmp_path / "events.jsonl"
    pipeline = ScanPipeline(
        fetcher=fetcher,
        repository=MemoryRepo(),
        fallback_encodings=("utf-8",),
        events_path=events_path,
    )

    result = asyncio.run(pipeline.run_batch(results))

    failed = result.outcomes[1]
    assert failed.state is ItemState.FAILED
    assert failed.error_class == "encoding_failed"
    assert [outcome.state for outcome in (result.outcomes[0], result.outcomes[2])] == [ItemState.PERSISTED] * 2
    assert result.failures == {"encoding_failed": 1}
    assert result.warnings == ["1 items failed: encoding_failed"]
    assert abs(result.summary.coverage - 2 / 3) < 1e-9
    failures = [event for event in _events(events_path) if event["event"] == "item_failed"]
    assert failures[0]["stage"] == "decode"
    assert failures[0]["url"] == results[1].url


def test_http_error_is_recorded_with_status(tmp_path: Path) -> None:
    results = _results(2)
    fetcher = StubFetcher()
    fetcher.errors[results[0].url] = PermanentHttpError(results[0].url, 404)
    events_path = tmp_path / "events.jsonl"
    pipeline = ScanPipeline(fetcher=fetcher, repository=MemoryRepo(), events_path=events_path)

    result = asyncio.run(pipeline.run_batch(results))

    assert result.outcomes[0].error_class == "permanent_http"
    assert result.outcomes[0].reason == "HTTP 404"
    assert result.outcomes[1].state is ItemState.PERSISTED
    assert result.metrics.fetched == 1
    event = next(event for event in _events(events_path) if event["event"] == "item_failed")
    assert event["status_code"] == 404


def test_invalid_url_is_not_fetched() -> None:
    fetcher = StubFetcher()
    pipeline = ScanPipeline(fetcher=fetcher, repository=MemoryRepo())

    result = asyncio.run(pipeline.run_batch([SearchResult(title="bad", url="ftp://example.com/x")]))

    assert result.outcomes[0].error_class == "invalid_input"
    assert fetcher.calls == []


def test_persistence_failure_is_isolated() -> None:
    class FlakyRepo(MemoryRepo):
        def insert_article(self, record) -> None:
            if record.url.endswith("p0"):
                raise PersistenceError("disk full", url=record.url)
            super().insert_article(record)

    repo = FlakyRepo()
    pipeline = ScanPipeline(fetcher=StubFetcher(), repository=repo)

    result = asyncio.run(pipeline.run_batch(_results(2)))

    assert result.outcomes[0].error_class == "persistence_failure"
    assert result.outcomes[1].state is ItemState.PERSISTED
    assert len(repo.records) == 1


def test_unexpected_errors_are_internal() -> None:
    fetcher = StubFetcher()
    fetcher.errors["https://example.com/p0"] = KeyError("boom")
    pipeline = ScanPipeline(fetcher=fetcher, repository=MemoryRepo())

    result = asyncio.run(pipeline.run_batch(_results(1)))

    assert result.outcomes[0].error_class == "internal_error"


def test_results_are_limited_to_max_results() -> None:
    fetcher = StubFetcher()
    pipeline = ScanPipeline(fetcher=fetcher, repository=MemoryRepo(), max_results=2)

    result = asyncio.run(pipeline.run_batch(_results(3)))

    assert len(result.outcomes) == 2
    assert result.warnings == ["Limiting results to 2 of 3."]
    assert len(fetcher.calls) == 2


def test_search_and_scan_uses_provider() -> None:
    class StubProvider:
        def __init__(self) -> None:
            self.queries: list[tuple[str, int]] = []

        async def search(self, query: str, count: int) -> list[SearchResult]:
            self.queries.append((query, count))
            return _results(2)

    provider = StubProvider()
    pipeline = ScanPipeline(fetcher=StubFetcher(), repository=MemoryRepo(), max_results=7)

    result = asyncio.run(pipeline.search_and_scan(provider, "garden news"))

    assert provider.queries == [("garden news", 7)]
    assert len(result.records) == 2
    assert result.search is not None
    assert result.search.query == "garden news"
    assert all(record.search_record_id == result.search.search_id for record in result.records)


def test_search_and_scan_stores_the_search_run() -> None:
    class ParamProvider:
        params = SearchParams(hl="de", gl="at", safe="active")

        async def search(self, query: str, count: int) -> list[SearchResult]:
            return _results(3)

    repo = MemoryRepo()
    pipeline = ScanPipeline(fetcher=StubFetcher(), repository=repo)

    result = asyncio.run(pipeline.search_and_scan(ParamProvider(), "quiet garden"))

    assert result.search is not None
    stored = repo.get_search(result.search.search_id)
    assert stored is not None
    assert stored.query == "quiet garden"
    assert stored.params == {"hl": "de", "gl": "at", "safe": "active"}
    assert stored.result_count == 3
    assert [item.url for item in stored.results] == [item.url for item in _results(3)]
    assert stored.duration_seconds >= 0
    assert len(repo.list_articles(search_record_id=stored.search_id)) == 3

    assert repo.delete_search(stored.search_id) is True
    assert repo.list_articles() == []
    assert repo.list_searches() == []


class StubRenderer:
    name = "stub"

    def __init__(self, html: str | None = None, error: Exception | None = None) -> None:
        self.html = html
        self.error = error
        self.calls: list[str] = []

    async def render(self, url: str) -> str:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.html or ""


def test_failed_render_keeps_static_html_and_degrades(tmp_path: Path) -> None:
    renderer = StubRenderer(error=RuntimeError("browser crashed"))
    events_path = tmp_path / "events.jsonl"
    pipeline = ScanPipeline(
        fetcher=StubFetcher(),
        repository=MemoryRepo(),
        renderer=renderer,
        render_policy=RenderPolicy(min_words=1000),
        events_path=events_path,
    )

    result = asyncio.run(pipeline.run_batch(_results(2)))

    assert [outcome.state for outcome in result.outcomes] == [ItemState.PERSISTED] * 2
    assert all(outcome.degraded for outcome in result.outcomes)
    assert result.records[0].title == "Page 1"
    assert result.metrics.degraded == 2
    assert renderer.calls == [item.url for item in _results(2)]
    degraded = [event for event in _events(events_path) if event["event"] == "item_degraded"]
    assert any("browser crashed" in note for note in degraded[0]["notes"])


def test_rendered_html_is_extracted() -> None:
    rendered = (
        "<html><head><title>Rendered page</title></head><body>"
        f"<article><p>{_prose(120)}</p></article></body></html>"
    )
    renderer = StubRenderer(html=rendered)
    pipeline = ScanPipeline(
        fetcher=StubFetcher(),
        repository=MemoryRepo(),
        renderer=renderer,
        render_policy=RenderPolicy(min_words=1000),
    )

    result = asyncio.run(pipeline.run_batch(_results(1)))

    assert result.records[0].title == "Rendered page"
    assert not result.outcomes[0].degraded


def _png() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 3), color=(10, 120, 10)).save(buffer, "PNG")
    return buffer.getvalue()


def _oversized_png_header() -> bytes:
    def chunk(kind: bytes, payload: bytes) -> bytes:
        return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))

    ihdr = struct.pack(">IIBBBBB", 30000, 30000, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


def test_failed_image_is_dropped_and_record_persists() -> None:
    png = _png()
    huge = _oversized_png_header()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ok.png":
            return httpx.Response(200, content=png, headers={"content-type": "image/png"})
        if request.url.path == "/huge.png":
            return httpx.Response(200, content=huge, headers={"content-type": "image/png"})
        return httpx.Response(404)

    fetcher = StubFetcher()
    fetcher.bodies["https://example.com/p0"] = (
        "<html><head><title>Pictures</title></head><body><article>"
        "<img src='https://img.example.com/ok.png' alt='ok'>"
        "<img src='/missing.png'>"
        "<img src='https://img.example.com/huge.png'>"
        f"<p>{_prose(300)}</p></article></body></html>"
    ).encode("utf-8")
    repo = MemoryRepo()
    pipeline = ScanPipeline(
        fetcher=fetcher,
        repository=repo,
        image_downloader=ImageDownloader(transport=httpx.MockTransport(handler)),
    )

    result = asyncio.run(pipeline.run_batch(_results(1)))

    outcome = result.outcomes[0]
    assert outcome.state is ItemState.PERSISTED
    assert outcome.degraded
    images = result.records[0].extraction.images
    assert [image.source_url for image in images] == [
        "https://img.example.com/ok.png",
        "https://img.example.com/huge.png",
    ]
    assert (images[0].width, images[0].height) == (4, 3)
    assert (images[1].width, images[1].height) == (None, None)
    image_stage = next(stage for stage in outcome.stages if stage.stage == "images")
    assert len(image_stage.notes) == 1
    assert "missing.png" in image_stage.notes[0]
    assert len(repo.records) == 1


def test_database_outage_is_a_persistence_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def refuse(self):
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(PostgresRepo, "_connect", refuse)
    events_path = tmp_path / "events.jsonl"
    pipeline = ScanPipeline(
        fetcher=StubFetcher(),
        repository=PostgresRepo(dsn="host=127.0.0.1 port=1"),
        events_path=events_path,
    )

    result = asyncio.run(pipeline.run_batch(_results(2)))

    assert [outcome.error_class for outcome in result.outcomes] == ["persistence_failure"] * 2
    assert result.failures == {"persistence_failure": 2}
    event = next(event for event in _events(events_path) if event["event"] == "item_failed")
    assert event["stage"] == "persist"
    assert "connection refused" in event["reason"]
