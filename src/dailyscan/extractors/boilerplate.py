from __future__ import annotations

from typing import Iterable

from bs4 import BeautifulSoup
from bs4.element import Comment, Tag

from dailyscan.extractors.dom import attribute_text, parse_html

CODE_TAGS = ("script", "style")
NOISE_TAGS = ("header", "nav", "footer", "aside", "form", "noscript")
NOISE_KEYWORDS = (
    "cookie",
    "consent",
    "banner",
    "ads",
    "advert",
    "breadcrumb",
    "sidebar",
    "share",
    "newsletter",
    "related",
    "comments",
    "promo",
    "paywall",
    "subscribe",
)


def is_noise_container(class_or_id: str) -> bool:
    lowered = class_or_id.lower()
    return any(keyword in lowered for keyword in NOISE_KEYWORDS)


def _decompose_all(tags: Iterable[Tag]) -> None:
    for tag in tags:
        # nested matches go away with their ancestor
        if not tag.decomposed:
            tag.decompose()


def remove_code_and_comments(soup: BeautifulSoup) -> BeautifulSoup:
    _decompose_all(soup.find_all(list(CODE_TAGS)))
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    return soup


def strip_boilerplate_tree(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove code, comments and noise containers from `soup` in place."""
    remove_code_and_comments(soup)
    _decompose_all(soup.find_all(list(NOISE_TAGS)))
    noisy = [
        div
        for div in soup.find_all("div")
        if is_noise_container(f"{attribute_text(div, 'class')} {attribute_text(div, 'id')}")
    ]
    _decompose_all(noisy)
    return soup


def strip_boilerplate(html: str) -> str:
    return str(strip_boilerplate_tree(parse_html(html)))
