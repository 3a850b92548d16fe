"""Network fetchers: pages, rendered pages and images."""

from __future__ import annotations

__all__ = ["Fetcher", "HttpFetcher", "ImageDownloader", "PlaywrightRenderer"]

from dailyscan.fetchers.http import Fetcher, HttpFetcher
from dailyscan.fetchers.images import ImageDownloader
from dailyscan.fetchers.playwright_renderer import PlaywrightRenderer
