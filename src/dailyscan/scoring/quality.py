from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from dailyscan.models import ArticleRecord, QualityVerdict
from dailyscan.scoring.terms import QualityTerms, QualityTermsStore

HEADING_MARKERS = ("#", "**")
LIST_MARKERS = ("- ", "* ", "1. ")


@dataclass(frozen=True)
class QualityThresholds:
    min_word_count: int = 50
    min_reading_time: int = 1
    max_link_density: float = 0.3
    min_content_length: int = 200
    meaningful_word_factor: float = 1.5
    indicator_word_factor: float = 2.0


def url_token_ratio(content: str) -> float:
    """Share of whitespace tokens that look like URLs."""
    tokens = content.split()
    if not tokens:
        return 0.0
    links = [token for token in tokens if "http" in token or token.startswith("www.")]
    return len(links) / len(tokens)


def has_paragraphs(content: str) -> bool:
    return len(content.split("\n\n")) > 2


def has_headings(content: str) -> bool:
    return any(marker in content for marker in HEADING_MARKERS)


def has_lists(content: str) -> bool:
    return any(marker in content for marker in LIST_MARKERS)


def has_structure(content: str) -> bool:
    return has_paragraphs(content) or has_headings(content) or has_lists(content)


def _contains_any(haystacks: Iterable[str], terms: Iterable[str]) -> bool:
    texts = list(haystacks)
    for term in terms:
        needle = term.lower()
        if needle and any(needle in text for text in texts):
            return True
    return False


class QualityClassifier:
    """Assign a quality tier to extracted content.

    Rules are evaluated in a fixed order and the first match decides. Term
    lists are read from the store on every call so edits apply immediately.
    """

    def __init__(
        self,
        terms: QualityTermsStore | None = None,
        thresholds: QualityThresholds | None = None,
    ) -> None:
        self.terms = terms or QualityTermsStore()
        self.thresholds = thresholds or QualityThresholds()

    def assess(
        self,
        url: str,
        title: str,
        content: str,
        word_count: int,
        reading_time: int,
    ) -> QualityVerdict:
        return classify(self.terms.snapshot(), self.thresholds, url, title, content, word_count, reading_time)

    def assess_record(self, record: ArticleRecord) -> QualityVerdict:
        extraction = record.extraction
        return self.assess(
            record.url,
            record.title,
            extraction.as_markdown(),
            extraction.word_count,
            extraction.reading_time_minutes,
        )


def classify(
    terms: QualityTerms,
    thresholds: QualityThresholds,
    url: str,
    title: str,
    content: str,
    word_count: int,
    reading_time: int,
) -> QualityVerdict:
    url_lower = url.lower()
    title_lower = title.lower()
    content_lower = content.lower()

    if _contains_any([url_lower], terms.excluded_url_patterns):
        return QualityVerdict.excluded("Technical/structural URL pattern excluded")

    if word_count < thresholds.min_word_count:
        return QualityVerdict.low(f"Too few words ({word_count} < {thresholds.min_word_count})")

    if reading_time < thresholds.min_reading_time:
        return QualityVerdict.low(
            f"Too short reading time ({reading_time} < {thresholds.min_reading_time} min)"
        )

    if len(content) < thresholds.min_content_length:
        return QualityVerdict.low(
            f"Content too short ({len(content)} < {thresholds.min_content_length} chars)"
        )

    density = url_token_ratio(content)
    if density > thresholds.max_link_density:
        return QualityVerdict.low(
            f"High link density ({int(density * 100)}% > {int(thresholds.max_link_density * 100)}%)"
        )

    meaningful = _contains_any([content_lower], terms.meaningful_content_patterns)
    empty = _contains_any([content_lower], terms.empty_content_patterns)
    indicators = _contains_any([title_lower, content_lower], terms.quality_indicators)
    low_indicators = _contains_any([title_lower, content_lower], terms.low_quality_indicators)
    structured = has_structure(content)

    if empty and not meaningful:
        return QualityVerdict.low("Contains empty content patterns")

    if low_indicators and not indicators and not meaningful:
        return QualityVerdict.low("Contains low-quality indicators without meaningful content")

    if not structured and not meaningful:
        return QualityVerdict.low("Lacks content structure and meaningful content")

    if meaningful and word_count > int(thresholds.min_word_count * thresholds.meaningful_word_factor):
        return QualityVerdict.high("High-quality content with meaningful patterns")

    if indicators and word_count > int(thresholds.min_word_count * thresholds.indicator_word_factor):
        return QualityVerdict.high("High-quality content with good indicators")

    if meaningful or structured:
        return QualityVerdict.medium("Standard quality content with some structure")

    return QualityVerdict.medium("Standard quality content")


def reassess(record: ArticleRecord, classifier: QualityClassifier) -> ArticleRecord:
    """Return `record` with a verdict recomputed against the current term lists."""
    return record.with_verdict(classifier.assess_record(record))
