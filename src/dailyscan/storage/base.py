from __future__ import annotations

from typing import Any, Iterable, Protocol

from dailyscan.models import (
    ArticleRecord,
    Block,
    BlockType,
    ImageRef,
    QualityTier,
    QualityVerdict,
    SearchRecord,
)


class ArticleRepository(Protocol):
    def insert_article(self, record: ArticleRecord) -> None:
        ...

    def insert_image(self, record_id: str, image: ImageRef) -> None:
        ...

    def list_by_quality(self, tier: QualityTier) -> list[ArticleRecord]:
        ...

    def list_articles(self, search_record_id: str | None = None) -> list[ArticleRecord]:
        ...

    def update_tags(self, record_id: str, tags: Iterable[str]) -> frozenset[str]:
        ...

    def get_article(self, record_id: str) -> ArticleRecord | None:
        ...

    def update_quality(self, record_id: str, verdict: QualityVerdict) -> None:
        ...

    def delete_article(self, record_id: str) -> bool:
        ...

    def insert_search(self, record: SearchRecord) -> None:
        ...

    def get_search(self, search_id: str) -> SearchRecord | None:
        ...

    def list_searches(self) -> list[SearchRecord]:
        ...

    def delete_search(self, search_id: str) -> bool:
        ...


def normalize_tags(tags: Iterable[str]) -> frozenset[str]:
    return frozenset(tag.strip() for tag in tags if tag and tag.strip())


def blocks_to_json(blocks: Iterable[Block]) -> list[dict[str, Any]]:
    return [{"type": block.type.value, "text": block.text, "level": block.level} for block in blocks]


def blocks_from_json(data: Any) -> tuple[Block, ...]:
    if not isinstance(data, list):
        return ()
    blocks: list[Block] = []
    for item in data:
        if not isinstance(item, dict) or not str(item.get("text") or "").strip():
            continue
        blocks.append(Block(BlockType(item.get("type", "paragraph")), item["text"], item.get("level")))
    return tuple(blocks)


def verdict_from_row(tier: str, reason: str) -> QualityVerdict:
    return QualityVerdict(QualityTier(tier), reason)
