from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Iterable

from bs4 import BeautifulSoup
from bs4.element import Tag

from dailyscan.extractors.dom import normalize_text, word_count
from dailyscan.models import Metadata
from dailyscan.utils import normalize_terms

AUTHOR_JSONLD_PATHS = ("author.name", "author", "creator.name", "creator", "publisher.name", "publisher")
DATE_JSONLD_PATHS = ("datePublished", "dateCreated", "uploadDate")
DATE_FORMAT_FALLBACK = "%Y-%m-%dT%H:%M:%S%z"


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    for key, value in attrs.items():
        for tag in soup.find_all("meta", attrs={key: True}):
            if str(tag.get(key, "")).strip().lower() != value:
                continue
            content = normalize_text(str(tag.get("content", "")))
            if content:
                return content
    return None


def _first(strategies: Iterable[Callable[[], Any]]) -> Any:
    for strategy in strategies:
        value = strategy()
        if value:
            return value
    return None


def load_json_ld(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """Return every JSON-LD object on the page, with @graph members flattened."""
    objects: list[dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": True}):
        if str(script.get("type", "")).strip().lower() != "application/ld+json":
            continue
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        _collect_objects(data, objects)
    return objects


def _collect_objects(data: Any, into: list[dict[str, Any]]) -> None:
    if isinstance(data, list):
        for item in data:
            _collect_objects(item, into)
    elif isinstance(data, dict):
        into.append(data)
        graph = data.get("@graph")
        if graph is not None:
            _collect_objects(graph, into)


def _lookup_path(obj: Any, path: str) -> Any:
    current = obj
    for part in path.split("."):
        if isinstance(current, list):
            current = current[0] if current else None
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        text = normalize_text(value)
        return text or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, dict):
        return _as_text(value.get("name"))
    if isinstance(value, list):
        for item in value:
            text = _as_text(item)
            if text:
                return text
    return None


def json_ld_value(objects: list[dict[str, Any]], paths: Iterable[str]) -> str | None:
    for path in paths:
        for obj in objects:
            text = _as_text(_lookup_path(obj, path))
            if text:
                return text
    return None


def parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(text, DATE_FORMAT_FALLBACK)
    except ValueError:
        return None


def extract_title(soup: BeautifulSoup) -> str | None:
    if soup.title is not None:
        title = normalize_text(soup.title.get_text(" "))
        if title:
            return title
    return _meta_content(soup, property="og:title")


def _span_author(soup: BeautifulSoup) -> str | None:
    for span in soup.find_all("span", class_=True):
        classes = " ".join(span.get("class", [])).lower()
        if "author" not in classes:
            continue
        text = normalize_text(span.get_text(" "))
        if text:
            return text
    return None


def _time_datetime(soup: BeautifulSoup) -> str | None:
    tag = soup.find("time", attrs={"datetime": True})
    if isinstance(tag, Tag):
        return str(tag.get("datetime", "")).strip() or None
    return None


def _html_lang(soup: BeautifulSoup) -> str | None:
    html = soup.find("html")
    if isinstance(html, Tag):
        lang = str(html.get("lang", "")).strip()
        return lang or None
    return None


def extract_author(soup: BeautifulSoup, objects: list[dict[str, Any]]) -> str | None:
    return _first(
        [
            lambda: _meta_content(soup, name="author"),
            lambda: _meta_content(soup, property="article:author"),
            lambda: _meta_content(soup, name="twitter:creator"),
            lambda: _span_author(soup),
            lambda: json_ld_value(objects, AUTHOR_JSONLD_PATHS),
        ]
    )


def extract_publish_date(soup: BeautifulSoup, objects: list[dict[str, Any]]) -> datetime | None:
    candidates: list[Callable[[], str | None]] = [
        lambda: _meta_content(soup, property="article:published_time"),
        lambda: _time_datetime(soup),
        lambda: _meta_content(soup, name="date"),
    ]
    candidates.extend(
        (lambda path=path: json_ld_value(objects, [path])) for path in DATE_JSONLD_PATHS
    )
    for candidate in candidates:
        parsed = parse_date(candidate())
        if parsed is not None:
            return parsed
    return None


def extract_keywords(soup: BeautifulSoup, objects: list[dict[str, Any]]) -> frozenset[str]:
    meta = _meta_content(soup, name="keywords")
    if meta:
        return frozenset(normalize_terms(meta.split(",")))
    for obj in objects:
        value = obj.get("keywords")
        if isinstance(value, str):
            return frozenset(normalize_terms(value.split(",")))
        if isinstance(value, list):
            return frozenset(normalize_terms(str(item) for item in value))
    return frozenset()


def extract_metadata(soup: BeautifulSoup, main_text: str) -> Metadata:
    """Read author, dates, description, keywords and language from the full document."""
    objects = load_json_ld(soup)
    description = _first(
        [
            lambda: _meta_content(soup, name="description"),
            lambda: _meta_content(soup, property="og:description"),
            lambda: json_ld_value(objects, ["description"]),
        ]
    )
    language = _first(
        [
            lambda: _html_lang(soup),
            lambda: _meta_content(soup, **{"http-equiv": "content-language"}),
            lambda: json_ld_value(objects, ["inLanguage"]),
        ]
    )
    return Metadata(
        author=extract_author(soup, objects),
        publish_date=extract_publish_date(soup, objects),
        description=description,
        keywords=extract_keywords(soup, objects),
        language=language,
        word_count=word_count(main_text),
    )
