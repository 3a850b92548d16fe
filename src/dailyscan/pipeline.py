from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence
from uuid import uuid4

from dailyscan.ai.summarise import Summarizer
from dailyscan.cancellation import CancellationToken
from dailyscan.discovery.serpapi import SearchProvider
from dailyscan.discovery.url_utils import validate_url
from dailyscan.errors import Cancelled, ScanError
from dailyscan.extractors.encoding import DEFAULT_FALLBACKS, resolve_encoding
from dailyscan.extractors.readability import ReadabilityExtractor
from dailyscan.extractors.render import Renderer, RenderPolicy, render_with_fallback
from dailyscan.fetchers.http import Fetcher
from dailyscan.fetchers.images import ImageDownloader
from dailyscan.models import (
    ArticleRecord,
    ItemOutcome,
    ItemState,
    RunMetrics,
    SearchRecord,
    SearchResult,
    StageResult,
    StageStatus,
    new_record_id,
)
from dailyscan.reporting.logging import log_event
from dailyscan.reporting.metrics import RunSummary, compute_run_summary, summarize_failures
from dailyscan.scoring.quality import QualityClassifier
from dailyscan.storage.base import ArticleRepository

DEFAULT_MAX_RESULTS = 10


@dataclass(frozen=True)
class BatchResult:
    run_id: str
    outcomes: list[ItemOutcome]
    metrics: RunMetrics
    summary: RunSummary
    failures: dict[str, int]
    warnings: list[str]
    search: SearchRecord | None = None

    @property
    def records(self) -> list[ArticleRecord]:
        """Persisted records in the order of the input results."""
        return [outcome.record for outcome in self.outcomes if outcome.record is not None]


@dataclass
class ScanPipeline:
    """Fetch, extract, summarise, classify and persist one batch of search results.

    Every item moves through pending, fetching, extracting and quality_assessing
    to persisted, or ends in failed with a reason. A failing item never stops
    the batch. Only one batch is current at a time: starting a new one cancels
    the token of the batch in flight.
    """

    fetcher: Fetcher
    repository: ArticleRepository
    classifier: QualityClassifier = field(default_factory=QualityClassifier)
    extractor: ReadabilityExtractor = field(default_factory=ReadabilityExtractor)
    renderer: Renderer | None = None
    render_policy: RenderPolicy = field(default_factory=RenderPolicy)
    image_downloader: ImageDownloader | None = None
    summarizer: Summarizer | None = None
    max_results: int = DEFAULT_MAX_RESULTS
    concurrency: int = 1
    fallback_encodings: Sequence[str] = DEFAULT_FALLBACKS
    events_path: Path | None = None
    log: Optional[Callable[[str], None]] = None
    log_detail: Optional[Callable[[str], None]] = None
    _current: CancellationToken | None = field(default=None, init=False, repr=False)

    def _log(self, message: str) -> None:
        if self.log is not None:
            self.log(message)

    def _detail(self, message: str) -> None:
        if self.log_detail is not None:
            self.log_detail(message)

    def _event(self, event: str, payload: dict[str, Any]) -> None:
        log_event(event, payload, self.events_path)

    def cancel_current(self) -> None:
        if self._current is not None:
            self._current.cancel()

    def _begin(self, token: CancellationToken) -> None:
        if self._current is not None and self._current is not token:
            self._current.cancel()
        self._current = token

    async def search_and_scan(
        self,
        provider: SearchProvider,
        query: str,
        token: CancellationToken | None = None,
    ) -> BatchResult:
        token = token or CancellationToken()
        self._begin(token)
        self._log(f"[search] {query}")
        started = time.monotonic()
        results = await token.guard(provider.search(query, self.max_results))
        token.raise_if_cancelled()
        search = SearchRecord(
            search_id=new_record_id(),
            query=query,
            params=_search_params(provider),
            results=tuple(results),
            duration_seconds=round(time.monotonic() - started, 3),
        )
        self.repository.insert_search(search)
        self._log(f"[search] {search.result_count} results (search {search.search_id})")
        batch = await self.run_batch(results, token, search_record_id=search.search_id)
        return replace(batch, search=search)

    async def run_batch(
        self,
        results: Iterable[SearchResult],
        token: CancellationToken | None = None,
        search_record_id: str | None = None,
    ) -> BatchResult:
        token = token or CancellationToken()
        self._begin(token)
        warnings: list[str] = []
        items = list(results)
        if len(items) > self.max_results:
            warnings.append(f"Limiting results to {self.max_results} of {len(items)}.")
            items = items[: self.max_results]

        metrics = RunMetrics(run_id=uuid4().hex, started_at=_utc_now(), total_results=len(items))
        outcomes: dict[int, ItemOutcome] = {}
        try:
            if self.concurrency <= 1:
                for index, result in enumerate(items):
                    token.raise_if_cancelled()
                    outcomes[index] = await self._process(
                        index, result, token, metrics.run_id, search_record_id
                    )
            else:
                await self._run_bounded(items, token, metrics.run_id, search_record_id, outcomes)
        except Cancelled:
            ordered = [outcomes[index] for index in sorted(outcomes)]
            self._finish(metrics, ordered, cancelled=True)
            self._event(
                "batch_cancelled",
                {
                    "run_id": metrics.run_id,
                    "completed": len(ordered),
                    "persisted": metrics.persisted,
                    "total_results": metrics.total_results,
                },
            )
            self._log(f"[cancel] batch cancelled after {len(ordered)} of {len(items)} items")
            raise
        finally:
            if self._current is token:
                self._current = None

        ordered = [outcomes[index] for index in sorted(outcomes)]
        self._finish(metrics, ordered, cancelled=False)
        summary = compute_run_summary(metrics)
        failures = summarize_failures(ordered)
        for error_class, count in sorted(failures.items()):
            warnings.append(f"{count} items failed: {error_class}")
        self._event(
            "run_summary",
            {
                "run_id": summary.run_id,
                "coverage": round(summary.coverage, 3),
                "total_results": summary.total_results,
                "fetched": summary.fetched,
                "extracted": summary.extracted,
                "persisted": summary.persisted,
                "failed": summary.failed,
                "degraded": summary.degraded,
                "failures": failures,
            },
        )
        return BatchResult(
            run_id=metrics.run_id,
            outcomes=ordered,
            metrics=metrics,
            summary=summary,
            failures=failures,
            warnings=warnings,
        )

    async def _run_bounded(
        self,
        items: list[SearchResult],
        token: CancellationToken,
        run_id: str,
        search_record_id: str | None,
        outcomes: dict[int, ItemOutcome],
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(index: int, result: SearchResult) -> ItemOutcome:
            async with semaphore:
                token.raise_if_cancelled()
                return await self._process(index, result, token, run_id, search_record_id)

        gathered = await asyncio.gather(
            *(bounded(index, result) for index, result in enumerate(items)),
            return_exceptions=True,
        )
        cancelled = False
        for index, item in enumerate(gathered):
            if isinstance(item, ItemOutcome):
                outcomes[index] = item
            elif isinstance(item, Cancelled):
                cancelled = True
            elif isinstance(item, BaseException):
                raise item
        if cancelled:
            raise Cancelled("Operation cancelled")

    async def _process(
        self,
        index: int,
        result: SearchResult,
        token: CancellationToken,
        run_id: str,
        search_record_id: str | None = None,
    ) -> ItemOutcome:
        outcome = ItemOutcome(index=index, result=result)
        stage = "validate"
        try:
            url = validate_url(result.url)

            stage = "fetch"
            outcome.state = ItemState.FETCHING
            self._log(f"[fetch] {url}")
            fetched = await self.fetcher.fetch(url, token)
            token.raise_if_cancelled()
            outcome.stages.append(
                StageResult(stage, StageStatus.SUCCEEDED, fetched.status_code, (f"attempts={fetched.attempts}",))
            )

            stage = "decode"
            decoded = resolve_encoding(fetched.content, fetched.content_type, self.fallback_encodings)
            self._detail(f"[decode] {decoded.encoding} via {decoded.source}: {url}")
            html = decoded.text

            if self.renderer is not None:
                stage = "render"
                rendered = await render_with_fallback(
                    self.renderer, fetched.final_url, html, self.render_policy, token
                )
                token.raise_if_cancelled()
                outcome.stages.append(rendered)
                html = rendered.value or html

            stage = "extract"
            outcome.state = ItemState.EXTRACTING
            extraction = self.extractor.extract(html, fetched.final_url)
            if extraction.blocks:
                outcome.stages.append(StageResult(stage, StageStatus.SUCCEEDED, len(extraction.blocks)))
            else:
                outcome.stages.append(
                    StageResult(stage, StageStatus.DEGRADED, 0, ("no content blocks extracted",))
                )
            self._detail(f"[extract] {extraction.word_count} words, {len(extraction.blocks)} blocks: {url}")

            if self.image_downloader is not None and extraction.images:
                stage = "images"
                images = await self.image_downloader.download_all(extraction.images, token)
                token.raise_if_cancelled()
                outcome.stages.append(images)
                extraction = extraction.with_images(images.value or ())

            stage = "summary"
            summary = await self._summarise(result, token)
            outcome.stages.append(summary)

            stage = "quality"
            outcome.state = ItemState.QUALITY_ASSESSING
            verdict = self.classifier.assess(
                url,
                extraction.title,
                extraction.as_markdown(),
                extraction.word_count,
                extraction.reading_time_minutes,
            )
            record = ArticleRecord(
                record_id=new_record_id(),
                url=url,
                extraction=extraction,
                verdict=verdict,
                final_url=fetched.final_url,
                search_title=result.title,
                snippet=result.snippet,
                summary=summary.value or result.snippet,
                fetched_at=fetched.fetched_at,
                search_record_id=search_record_id,
            )
            self._detail(f"[quality] {verdict.tier.value}: {verdict.reason}")

            stage = "persist"
            token.raise_if_cancelled()
            self.repository.insert_article(record)
            outcome.record = record
            outcome.state = ItemState.PERSISTED
        except Cancelled:
            raise
        except ScanError as exc:
            self._fail(outcome, stage, exc, exc.error_class, run_id)
            return outcome
        except Exception as exc:
            self._fail(outcome, stage, exc, "internal_error", run_id)
            return outcome

        if outcome.degraded:
            notes = [note for item in outcome.stages if item.degraded for note in item.notes]
            self._event(
                "item_degraded",
                {"run_id": run_id, "index": index, "url": result.url, "notes": notes},
            )
        return outcome

    async def _summarise(self, result: SearchResult, token: CancellationToken) -> StageResult[str]:
        if self.summarizer is None:
            return StageResult("summary", StageStatus.SUCCEEDED, result.snippet, ("summarisation disabled",))
        try:
            text = await token.guard(self.summarizer.summarise(result.snippet, result.title, result.url))
        except Cancelled:
            raise
        except Exception as exc:
            return StageResult(
                "summary",
                StageStatus.DEGRADED,
                result.snippet,
                (f"summary failed, using snippet: {exc}",),
            )
        token.raise_if_cancelled()
        return StageResult("summary", StageStatus.SUCCEEDED, text)

    def _fail(
        self,
        outcome: ItemOutcome,
        stage: str,
        exc: Exception,
        error_class: str,
        run_id: str,
    ) -> None:
        outcome.state = ItemState.FAILED
        outcome.reason = str(exc) or type(exc).__name__
        outcome.error_class = error_class
        outcome.stages.append(StageResult(stage, StageStatus.FATAL, None, (outcome.reason,)))
        self._log(f"[fail] {stage} {outcome.result.url}: {outcome.reason}")
        self._event(
            "item_failed",
            {
                "run_id": run_id,
                "index": outcome.index,
                "url": outcome.result.url,
                "stage": stage,
                "status_code": getattr(exc, "status_code", None),
                "error_class": error_class,
                "reason": outcome.reason,
            },
        )

    def _finish(self, metrics: RunMetrics, outcomes: list[ItemOutcome], cancelled: bool) -> None:
        metrics.ended_at = _utc_now()
        metrics.cancelled = cancelled
        metrics.fetched = sum(1 for outcome in outcomes if _reached(outcome, "fetch"))
        metrics.extracted = sum(1 for outcome in outcomes if _reached(outcome, "extract"))
        metrics.persisted = sum(1 for outcome in outcomes if outcome.state is ItemState.PERSISTED)
        metrics.failed = sum(1 for outcome in outcomes if outcome.state is ItemState.FAILED)
        metrics.degraded = sum(1 for outcome in outcomes if outcome.degraded)


def _search_params(provider: SearchProvider) -> dict[str, str]:
    params = getattr(provider, "params", None)
    return params.as_query() if params is not None else {}


def _reached(outcome: ItemOutcome, stage: str) -> bool:
    return any(item.stage == stage and item.status is not StageStatus.FATAL for item in outcome.stages)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
