from __future__ import annotations

from bs4 import BeautifulSoup
from bs4.element import Tag

LINK_TEXT_UNIT = 80.0


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def normalize_text(text: str) -> str:
    return " ".join(text.split())


def tag_text(tag: Tag) -> str:
    return normalize_text(tag.get_text(" "))


def word_count(text: str) -> int:
    return len(text.split())


def link_density(link_count: int, text_length: int) -> float:
    """Links per 80 characters of text, with at least one unit of text."""
    return link_count / max(1.0, text_length / LINK_TEXT_UNIT)


def attribute_text(tag: Tag, name: str) -> str:
    value = tag.get(name)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value)
    return str(value)
