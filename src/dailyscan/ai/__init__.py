"""Summarisation through an OpenAI-compatible chat API."""

from __future__ import annotations

__all__ = ["OpenAIClient", "OpenAISummarizer", "PromptSpec", "Summarizer"]

from dailyscan.ai.base import OpenAIClient, PromptSpec
from dailyscan.ai.summarise import OpenAISummarizer, Summarizer
