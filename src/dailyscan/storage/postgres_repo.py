from __future__ import annotations

import json
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from dailyscan.errors import PersistenceError
from dailyscan.models import (
    ArticleExtraction,
    ArticleRecord,
    ImageRef,
    Metadata,
    QualityTier,
    QualityVerdict,
    SearchRecord,
    SearchResult,
)
from dailyscan.storage.base import blocks_from_json, blocks_to_json, normalize_tags, verdict_from_row


class PostgresConfigError(RuntimeError):
    pass


SCHEMA = """
    CREATE TABLE IF NOT EXISTS search_records (
        search_id TEXT PRIMARY KEY,
        query TEXT NOT NULL,
        params JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL,
        duration_seconds DOUBLE PRECISION NOT NULL DEFAULT 0,
        result_count INTEGER NOT NULL DEFAULT 0
    );
    CREATE TABLE IF NOT EXISTS search_results (
        search_id TEXT NOT NULL REFERENCES search_records (search_id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        title TEXT NOT NULL,
        url TEXT NOT NULL,
        snippet TEXT NOT NULL DEFAULT '',
        PRIMARY KEY (search_id, position)
    );
    CREATE TABLE IF NOT EXISTS articles (
        record_id TEXT PRIMARY KEY,
        url TEXT NOT NULL,
        final_url TEXT,
        search_title TEXT NOT NULL DEFAULT '',
        title TEXT NOT NULL,
        snippet TEXT NOT NULL DEFAULT '',
        summary TEXT NOT NULL DEFAULT '',
        blocks JSONB NOT NULL DEFAULT '[]'::jsonb,
        author TEXT,
        publish_date TIMESTAMPTZ,
        description TEXT,
        keywords JSONB NOT NULL DEFAULT '[]'::jsonb,
        language TEXT,
        word_count INTEGER NOT NULL DEFAULT 0,
        quality_tier TEXT NOT NULL,
        quality_reason TEXT NOT NULL,
        fetched_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    ALTER TABLE articles ADD COLUMN IF NOT EXISTS search_record_id TEXT
        REFERENCES search_records (search_id) ON DELETE CASCADE;
    CREATE INDEX IF NOT EXISTS articles_quality_tier_idx ON articles (quality_tier);
    CREATE INDEX IF NOT EXISTS articles_search_record_idx ON articles (search_record_id);
    CREATE TABLE IF NOT EXISTS article_images (
        image_id BIGSERIAL PRIMARY KEY,
        record_id TEXT NOT NULL REFERENCES articles (record_id) ON DELETE CASCADE,
        source_url TEXT NOT NULL,
        local_path TEXT,
        alt_text TEXT,
        width INTEGER,
        height INTEGER,
        data BYTEA
    );
    CREATE TABLE IF NOT EXISTS article_tags (
        record_id TEXT NOT NULL REFERENCES articles (record_id) ON DELETE CASCADE,
        tag TEXT NOT NULL,
        PRIMARY KEY (record_id, tag)
    );
"""

ARTICLE_COLUMNS = (
    "record_id, url, final_url, search_title, title, snippet, summary, blocks, author, "
    "publish_date, description, keywords, language, word_count, quality_tier, "
    "quality_reason, fetched_at, search_record_id"
)

SEARCH_COLUMNS = "search_id, query, params, created_at, duration_seconds, result_count"


def _driver():
    try:
        import psycopg
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgresRepo") from exc
    return psycopg


@contextmanager
def _persistence_errors(action: str, url: str | None = None) -> Iterator[None]:
    psycopg = _driver()
    try:
        yield
    except psycopg.Error as exc:
        raise PersistenceError(f"Failed to {action}: {exc}", url=url) from exc


@dataclass
class PostgresRepo:
    """Article store on Postgres. Driver errors surface as PersistenceError."""

    dsn: str
    _schema_ready: bool = field(default=False, init=False, repr=False)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "PostgresRepo":
        return cls(dsn=build_postgres_dsn(env if env is not None else os.environ))

    def _connect(self):
        return _driver().connect(self.dsn)

    def ping(self) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone() == (1,)

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with _persistence_errors("create schema"):
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(SCHEMA)
                    conn.commit()
        self._schema_ready = True

    def insert_article(self, record: ArticleRecord) -> None:
        """Write the article, its images and its tags in one transaction."""
        extraction = record.extraction
        metadata = extraction.metadata
        sql = f"""
            INSERT INTO articles ({ARTICLE_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            record.record_id,
            _sanitize_text(record.url),
            _sanitize_text(record.final_url),
            _sanitize_text(record.search_title),
            _sanitize_text(record.title),
            _sanitize_text(record.snippet),
            _sanitize_text(record.summary),
            json.dumps(blocks_to_json(extraction.blocks), ensure_ascii=False).replace("\\u0000", ""),
            _sanitize_text(metadata.author),
            metadata.publish_date,
            _sanitize_text(metadata.description),
            json.dumps(sorted(metadata.keywords), ensure_ascii=False),
            _sanitize_text(metadata.language),
            metadata.word_count,
            record.verdict.tier.value,
            _sanitize_text(record.verdict.reason),
            record.fetched_at,
            record.search_record_id,
        )
        with _persistence_errors("insert article", url=record.url):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    for image in extraction.images:
                        _insert_image(cur, record.record_id, image)
                    for tag in sorted(normalize_tags(record.tags)):
                        cur.execute(
                            "INSERT INTO article_tags (record_id, tag) VALUES (%s, %s)",
                            (record.record_id, _sanitize_text(tag)),
                        )
                    conn.commit()

    def insert_image(self, record_id: str, image: ImageRef) -> None:
        with _persistence_errors("insert image", url=image.source_url):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    _insert_image(cur, record_id, image)
                    conn.commit()

    def list_by_quality(self, tier: QualityTier) -> list[ArticleRecord]:
        return self._select("WHERE quality_tier = %s", (tier.value,))

    def list_articles(self, search_record_id: str | None = None) -> list[ArticleRecord]:
        if search_record_id is None:
            return self._select("", ())
        return self._select("WHERE search_record_id = %s", (search_record_id,))

    def get_article(self, record_id: str) -> ArticleRecord | None:
        records = self._select("WHERE record_id = %s", (record_id,))
        return records[0] if records else None

    def update_tags(self, record_id: str, tags: Iterable[str]) -> frozenset[str]:
        normalized = normalize_tags(tags)
        with _persistence_errors("update tags"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1 FROM articles WHERE record_id = %s", (record_id,))
                    if cur.fetchone() is None:
                        raise PersistenceError(f"Unknown record {record_id}")
                    cur.execute("DELETE FROM article_tags WHERE record_id = %s", (record_id,))
                    for tag in sorted(normalized):
                        cur.execute(
                            "INSERT INTO article_tags (record_id, tag) VALUES (%s, %s)",
                            (record_id, _sanitize_text(tag)),
                        )
                    conn.commit()
        return normalized

    def update_quality(self, record_id: str, verdict: QualityVerdict) -> None:
        sql = """
            UPDATE articles SET quality_tier = %s, quality_reason = %s
            WHERE record_id = %s
        """
        with _persistence_errors("update quality"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (verdict.tier.value, _sanitize_text(verdict.reason), record_id))
                    if cur.rowcount == 0:
                        raise PersistenceError(f"Unknown record {record_id}")
                    conn.commit()

    def delete_article(self, record_id: str) -> bool:
        with _persistence_errors("delete article"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM articles WHERE record_id = %s", (record_id,))
                    deleted = cur.rowcount > 0
                    conn.commit()
        return deleted

    def insert_search(self, record: SearchRecord) -> None:
        """Write the search and its ranked results in one transaction."""
        with _persistence_errors("insert search"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"INSERT INTO search_records ({SEARCH_COLUMNS}) VALUES (%s, %s, %s, %s, %s, %s)",
                        (
                            record.search_id,
                            _sanitize_text(record.query),
                            json.dumps(record.params, ensure_ascii=False),
                            record.created_at,
                            record.duration_seconds,
                            record.result_count,
                        ),
                    )
                    for position, result in enumerate(record.results, start=1):
                        cur.execute(
                            """
                            INSERT INTO search_results (search_id, position, title, url, snippet)
                            VALUES (%s, %s, %s, %s, %s)
                            """,
                            (
                                record.search_id,
                                position,
                                _sanitize_text(result.title),
                                _sanitize_text(result.url),
                                _sanitize_text(result.snippet),
                            ),
                        )
                    conn.commit()

    def get_search(self, search_id: str) -> SearchRecord | None:
        searches = self._select_searches("WHERE search_id = %s", (search_id,))
        return searches[0] if searches else None

    def list_searches(self) -> list[SearchRecord]:
        return self._select_searches("", ())

    def delete_search(self, search_id: str) -> bool:
        with _persistence_errors("delete search"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM search_records WHERE search_id = %s", (search_id,))
                    deleted = cur.rowcount > 0
                    conn.commit()
        return deleted

    def _select(self, where: str, params: tuple[Any, ...]) -> list[ArticleRecord]:
        sql = f"SELECT {ARTICLE_COLUMNS} FROM articles {where} ORDER BY fetched_at, record_id"
        with _persistence_errors("load articles"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
                    ids = [row[0] for row in rows]
                    images = _load_images(cur, ids)
                    tags = _load_tags(cur, ids)
        return [_row_to_record(row, images.get(row[0], []), tags.get(row[0], set())) for row in rows]

    def _select_searches(self, where: str, params: tuple[Any, ...]) -> list[SearchRecord]:
        sql = f"SELECT {SEARCH_COLUMNS} FROM search_records {where} ORDER BY created_at, search_id"
        with _persistence_errors("load searches"):
            self.ensure_schema()
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
                    results = _load_search_results(cur, [row[0] for row in rows])
        return [_row_to_search(row, results.get(row[0], [])) for row in rows]


def _insert_image(cur, record_id: str, image: ImageRef) -> None:
    cur.execute(
        """
        INSERT INTO article_images (record_id, source_url, local_path, alt_text, width, height, data)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        """,
        (
            record_id,
            _sanitize_text(image.source_url),
            _sanitize_text(image.local_path),
            _sanitize_text(image.alt_text),
            image.width,
            image.height,
            image.data,
        ),
    )


def _load_images(cur, ids: list[str]) -> dict[str, list[ImageRef]]:
    if not ids:
        return {}
    cur.execute(
        """
        SELECT record_id, source_url, local_path, alt_text, width, height, data
        FROM article_images WHERE record_id = ANY(%s) ORDER BY image_id
        """,
        (ids,),
    )
    images: dict[str, list[ImageRef]] = {}
    for record_id, source_url, local_path, alt_text, width, height, data in cur.fetchall():
        images.setdefault(record_id, []).append(
            ImageRef(
                source_url=source_url,
                local_path=local_path,
                alt_text=alt_text,
                width=width,
                height=height,
                data=bytes(data) if data is not None else None,
            )
        )
    return images


def _load_tags(cur, ids: list[str]) -> dict[str, set[str]]:
    if not ids:
        return {}
    cur.execute("SELECT record_id, tag FROM article_tags WHERE record_id = ANY(%s)", (ids,))
    tags: dict[str, set[str]] = {}
    for record_id, tag in cur.fetchall():
        tags.setdefault(record_id, set()).add(tag)
    return tags


def _load_search_results(cur, ids: list[str]) -> dict[str, list[SearchResult]]:
    if not ids:
        return {}
    cur.execute(
        """
        SELECT search_id, title, url, snippet FROM search_results
        WHERE search_id = ANY(%s) ORDER BY search_id, position
        """,
        (ids,),
    )
    results: dict[str, list[SearchResult]] = {}
    for search_id, title, url, snippet in cur.fetchall():
        results.setdefault(search_id, []).append(SearchResult(title=title, url=url, snippet=snippet or ""))
    return results


def _row_to_search(row: tuple[Any, ...], results: list[SearchResult]) -> SearchRecord:
    search_id, query, params, created_at, duration_seconds, _result_count = row
    if isinstance(params, str):
        params = json.loads(params)
    return SearchRecord(
        search_id=search_id,
        query=query,
        params=dict(params or {}),
        results=tuple(results),
        created_at=created_at,
        duration_seconds=duration_seconds or 0.0,
    )


def _row_to_record(row: tuple[Any, ...], images: list[ImageRef], tags: set[str]) -> ArticleRecord:
    (
        record_id,
        url,
        final_url,
        search_title,
        title,
        snippet,
        summary,
        blocks,
        author,
        publish_date,
        description,
        keywords,
        language,
        word_count,
        quality_tier,
        quality_reason,
        fetched_at,
        search_record_id,
    ) = row
    if isinstance(blocks, str):
        blocks = json.loads(blocks)
    if isinstance(keywords, str):
        keywords = json.loads(keywords)
    extraction = ArticleExtraction(
        title=title,
        blocks=blocks_from_json(blocks),
        images=tuple(images),
        metadata=Metadata(
            author=author,
            publish_date=publish_date,
            description=description,
            keywords=frozenset(keywords or []),
            language=language,
            word_count=word_count or 0,
        ),
    )
    return ArticleRecord(
        record_id=record_id,
        url=url,
        extraction=extraction,
        verdict=verdict_from_row(quality_tier, quality_reason),
        final_url=final_url,
        search_title=search_title or "",
        snippet=snippet or "",
        summary=summary or "",
        tags=frozenset(tags),
        fetched_at=fetched_at,
        search_record_id=search_record_id,
    )


def build_postgres_dsn(env: Mapping[str, str]) -> str:
    host = env.get("POSTGRES_HOST")
    port = env.get("POSTGRES_PORT")
    database = env.get("POSTGRES_DB")
    user = env.get("POSTGRES_USER")
    password = env.get("POSTGRES_PASSWORD")

    missing = [
        name
        for name, value in (
            ("POSTGRES_HOST", host),
            ("POSTGRES_PORT", port),
            ("POSTGRES_DB", database),
            ("POSTGRES_USER", user),
            ("POSTGRES_PASSWORD", password),
        )
        if not value
    ]
    if missing:
        raise PostgresConfigError(
            "Missing Postgres env vars: " + ", ".join(missing)
        )

    return (
        f"host={host} port={port} dbname={database} user={user} password={password}"
    )


def _sanitize_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.replace("\x00", "")
