from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from dailyscan.errors import PersistenceError
from dailyscan.models import ArticleRecord, ImageRef, QualityTier, QualityVerdict, SearchRecord
from dailyscan.storage.base import normalize_tags


@dataclass
class MemoryRepo:
    """Process-local repository used when no database is configured."""

    records: dict[str, ArticleRecord] = field(default_factory=dict)
    searches: dict[str, SearchRecord] = field(default_factory=dict)

    def _require(self, record_id: str) -> ArticleRecord:
        record = self.records.get(record_id)
        if record is None:
            raise PersistenceError(f"Unknown record {record_id}")
        return record

    def insert_article(self, record: ArticleRecord) -> None:
        if record.record_id in self.records:
            raise PersistenceError(f"Duplicate record {record.record_id}", url=record.url)
        if record.search_record_id is not None and record.search_record_id not in self.searches:
            raise PersistenceError(f"Unknown search {record.search_record_id}", url=record.url)
        self.records[record.record_id] = record.with_tags(normalize_tags(record.tags))

    def insert_image(self, record_id: str, image: ImageRef) -> None:
        record = self._require(record_id)
        extraction = record.extraction.with_images([*record.extraction.images, image])
        self.records[record_id] = replace(record, extraction=extraction)

    def list_by_quality(self, tier: QualityTier) -> list[ArticleRecord]:
        return [record for record in self.records.values() if record.verdict.tier is tier]

    def list_articles(self, search_record_id: str | None = None) -> list[ArticleRecord]:
        if search_record_id is None:
            return list(self.records.values())
        return [record for record in self.records.values() if record.search_record_id == search_record_id]

    def update_tags(self, record_id: str, tags: Iterable[str]) -> frozenset[str]:
        record = self._require(record_id)
        normalized = normalize_tags(tags)
        self.records[record_id] = record.with_tags(normalized)
        return normalized

    def get_article(self, record_id: str) -> ArticleRecord | None:
        return self.records.get(record_id)

    def update_quality(self, record_id: str, verdict: QualityVerdict) -> None:
        record = self._require(record_id)
        self.records[record_id] = record.with_verdict(verdict)

    def delete_article(self, record_id: str) -> bool:
        return self.records.pop(record_id, None) is not None

    def insert_search(self, record: SearchRecord) -> None:
        if record.search_id in self.searches:
            raise PersistenceError(f"Duplicate search {record.search_id}")
        self.searches[record.search_id] = record

    def get_search(self, search_id: str) -> SearchRecord | None:
        return self.searches.get(search_id)

    def list_searches(self) -> list[SearchRecord]:
        return sorted(self.searches.values(), key=lambda search: search.created_at)

    def delete_search(self, search_id: str) -> bool:
        """Remove the search and every article it produced."""
        if self.searches.pop(search_id, None) is None:
            return False
        orphaned = [key for key, record in self.records.items() if record.search_record_id == search_id]
        for record_id in orphaned:
            del self.records[record_id]
        return True
