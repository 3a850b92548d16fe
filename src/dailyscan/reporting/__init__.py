"""Structured event logging and run metrics."""

from __future__ import annotations

__all__ = ["RunSummary", "compute_run_summary", "log_event", "summarize_failures"]

from dailyscan.reporting.logging import log_event
from dailyscan.reporting.metrics import RunSummary, compute_run_summary, summarize_failures
