from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from dailyscan.models import ItemOutcome, RunMetrics


@dataclass(frozen=True)
class RunSummary:
    run_id: str
    coverage: float
    total_results: int
    fetched: int
    extracted: int
    persisted: int
    failed: int
    degraded: int
    cancelled: bool
    started_at: datetime
    ended_at: datetime | None


def compute_run_summary(run: RunMetrics) -> RunSummary:
    coverage = 0.0
    if run.total_results:
        coverage = run.persisted / run.total_results
    return RunSummary(
        run_id=run.run_id,
        coverage=coverage,
        total_results=run.total_results,
        fetched=run.fetched,
        extracted=run.extracted,
        persisted=run.persisted,
        failed=run.failed,
        degraded=run.degraded,
        cancelled=run.cancelled,
        started_at=run.started_at,
        ended_at=run.ended_at,
    )


def summarize_failures(outcomes: Iterable[ItemOutcome]) -> dict[str, int]:
    failures: dict[str, int] = {}
    for outcome in outcomes:
        if outcome.error_class:
            failures[outcome.error_class] = failures.get(outcome.error_class, 0) + 1
    return failures
