from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Iterable, TypeVar
from uuid import uuid4

WORDS_PER_MINUTE = 200

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str = ""


@dataclass(frozen=True)
class SearchRecord:
    """One executed search: the query, the provider parameters and the results in rank order."""

    search_id: str
    query: str
    params: dict[str, str] = field(default_factory=dict)
    results: tuple[SearchResult, ...] = ()
    created_at: datetime = field(default_factory=_utc_now)
    duration_seconds: float = 0.0

    @property
    def result_count(self) -> int:
        return len(self.results)


@dataclass
class FetchResult:
    url: str
    final_url: str
    status_code: int | None = None
    content: bytes = b""
    content_type: str | None = None
    fetched_at: datetime = field(default_factory=_utc_now)
    elapsed_ms: int | None = None
    attempts: int = 1


class BlockType(str, Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"


@dataclass(frozen=True)
class Block:
    type: BlockType
    text: str
    level: int | None = None

    def __post_init__(self) -> None:
        text = self.text.strip()
        if not text:
            raise ValueError("Block text must not be empty")
        object.__setattr__(self, "text", text)


@dataclass(frozen=True)
class ImageRef:
    source_url: str
    local_path: str | None = None
    alt_text: str | None = None
    width: int | None = None
    height: int | None = None
    data: bytes | None = field(default=None, repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data) if self.data else 0


@dataclass(frozen=True)
class Metadata:
    author: str | None = None
    publish_date: datetime | None = None
    description: str | None = None
    keywords: frozenset[str] = frozenset()
    language: str | None = None
    word_count: int = 0

    @property
    def reading_time_minutes(self) -> int:
        return max(1, self.word_count // WORDS_PER_MINUTE)


@dataclass(frozen=True)
class ArticleExtraction:
    title: str
    blocks: tuple[Block, ...] = ()
    images: tuple[ImageRef, ...] = ()
    metadata: Metadata = field(default_factory=Metadata)

    @property
    def main_text(self) -> str:
        return "\n\n".join(block.text for block in self.blocks)

    @property
    def word_count(self) -> int:
        return self.metadata.word_count

    @property
    def reading_time_minutes(self) -> int:
        return self.metadata.reading_time_minutes

    def as_markdown(self) -> str:
        """Render blocks with heading and list markers, one block per paragraph."""
        parts: list[str] = []
        for block in self.blocks:
            if block.type is BlockType.HEADING:
                parts.append(f"{'#' * (block.level or 1)} {block.text}")
            elif block.type is BlockType.LIST:
                parts.append("\n".join(f"- {item}" for item in block.text.split("\n")))
            else:
                parts.append(block.text)
        return "\n\n".join(parts)

    def with_images(self, images: Iterable[ImageRef]) -> "ArticleExtraction":
        return replace(self, images=tuple(images))


class QualityTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    EXCLUDED = "excluded"


VISIBLE_TIERS = frozenset({QualityTier.HIGH, QualityTier.MEDIUM})


@dataclass(frozen=True)
class QualityVerdict:
    tier: QualityTier
    reason: str

    def __post_init__(self) -> None:
        if not self.reason or not self.reason.strip():
            raise ValueError("QualityVerdict requires a non-empty reason")

    @property
    def is_visible(self) -> bool:
        return self.tier in VISIBLE_TIERS

    @classmethod
    def high(cls, reason: str) -> "QualityVerdict":
        return cls(QualityTier.HIGH, reason)

    @classmethod
    def medium(cls, reason: str) -> "QualityVerdict":
        return cls(QualityTier.MEDIUM, reason)

    @classmethod
    def low(cls, reason: str) -> "QualityVerdict":
        return cls(QualityTier.LOW, reason)

    @classmethod
    def excluded(cls, reason: str) -> "QualityVerdict":
        return cls(QualityTier.EXCLUDED, reason)


def new_record_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class ArticleRecord:
    record_id: str
    url: str
    extraction: ArticleExtraction
    verdict: QualityVerdict
    final_url: str | None = None
    search_title: str = ""
    snippet: str = ""
    summary: str = ""
    tags: frozenset[str] = frozenset()
    fetched_at: datetime = field(default_factory=_utc_now)
    search_record_id: str | None = None

    @property
    def title(self) -> str:
        return self.extraction.title or self.search_title or self.url

    @property
    def is_visible(self) -> bool:
        return self.verdict.is_visible

    def with_verdict(self, verdict: QualityVerdict) -> "ArticleRecord":
        return replace(self, verdict=verdict)

    def with_tags(self, tags: Iterable[str]) -> "ArticleRecord":
        return replace(self, tags=frozenset(tags))


class ItemState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    QUALITY_ASSESSING = "quality_assessing"
    PERSISTED = "persisted"
    FAILED = "failed"


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    stage: str
    status: StageStatus
    value: T | None = None
    notes: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return self.status is StageStatus.DEGRADED


@dataclass
class ItemOutcome:
    index: int
    result: SearchResult
    state: ItemState = ItemState.PENDING
    record: ArticleRecord | None = None
    reason: str | None = None
    error_class: str | None = None
    stages: list[StageResult[Any]] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return any(stage.degraded for stage in self.stages)


@dataclass
class RunMetrics:
    run_id: str
    started_at: datetime
    ended_at: datetime | None = None
    total_results: int = 0
    fetched: int = 0
    extracted: int = 0
    persisted: int = 0
    failed: int = 0
    degraded: int = 0
    cancelled: bool = False
    notes: dict[str, Any] = field(default_factory=dict)
