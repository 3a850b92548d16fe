from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from dailyscan.extractors.dom import attribute_text, link_density, tag_text

CONTAINER_TAGS = ("article", "main", "section")
CONTENT_KEYWORDS = ("content", "article", "post", "story", "text", "body")
HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")


@dataclass(frozen=True)
class ScoringWeights:
    text_length: float = 0.01
    paragraph: float = 4.0
    list_item: float = 1.5
    heading: float = 1.0
    link_density: float = 10.0


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class CandidateStats:
    text_length: int
    links: int
    paragraphs: int
    list_items: int
    headings: int

    @property
    def link_density(self) -> float:
        return link_density(self.links, self.text_length)


@dataclass(frozen=True)
class ScoredCandidate:
    tag: Tag
    score: float
    stats: CandidateStats


def _is_content_div(tag: Tag) -> bool:
    if tag.name != "div":
        return False
    marker = f"{attribute_text(tag, 'class')} {attribute_text(tag, 'id')}".lower()
    return any(keyword in marker for keyword in CONTENT_KEYWORDS)


def _is_candidate(tag: Tag) -> bool:
    return tag.name in CONTAINER_TAGS or _is_content_div(tag)


def collect_candidates(soup: BeautifulSoup) -> list[Tag]:
    candidates = list(soup.find_all(_is_candidate))
    if candidates:
        return candidates
    body = soup.find("body")
    if isinstance(body, Tag):
        return [body]
    return [soup]


def candidate_stats(tag: Tag) -> CandidateStats:
    return CandidateStats(
        text_length=len(tag_text(tag)),
        links=len(tag.find_all("a")),
        paragraphs=len(tag.find_all("p")),
        list_items=len(tag.find_all("li")),
        headings=len(tag.find_all(list(HEADING_TAGS))),
    )


def score_stats(stats: CandidateStats, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    structure = (
        stats.paragraphs * weights.paragraph
        + stats.list_items * weights.list_item
        + stats.headings * weights.heading
    )
    return (
        stats.text_length * weights.text_length
        + structure
        - stats.link_density * weights.link_density
    )


def score_candidate(tag: Tag, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    return score_stats(candidate_stats(tag), weights)


def rank_candidates(
    candidates: Sequence[Tag], weights: ScoringWeights = DEFAULT_WEIGHTS
) -> list[ScoredCandidate]:
    scored: list[ScoredCandidate] = []
    for tag in candidates:
        stats = candidate_stats(tag)
        scored.append(ScoredCandidate(tag=tag, score=score_stats(stats, weights), stats=stats))
    return scored


def select_best(
    candidates: Sequence[Tag], weights: ScoringWeights = DEFAULT_WEIGHTS
) -> ScoredCandidate | None:
    """Highest score wins; on a tie the first candidate in document order is kept."""
    best: ScoredCandidate | None = None
    for scored in rank_candidates(candidates, weights):
        if best is None or scored.score > best.score:
            best = scored
    return best
