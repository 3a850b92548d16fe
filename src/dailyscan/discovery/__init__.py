"""Search discovery and URL helpers."""

from __future__ import annotations

__all__ = ["SearchParams", "SearchProvider", "SerpApiClient", "canonicalise_url", "validate_url"]

from dailyscan.discovery.serpapi import SearchParams, SearchProvider, SerpApiClient
from dailyscan.discovery.url_utils import canonicalise_url, validate_url
