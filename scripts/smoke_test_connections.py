from __future__ import annotations

import asyncio
import os
from pathlib import Path

from dailyscan.discovery.serpapi import SerpApiClient
from dailyscan.models import ArticleExtraction, ArticleRecord, Block, BlockType, QualityVerdict, new_record_id
from dailyscan.storage.postgres_repo import PostgresRepo
from dailyscan.utils import load_env_file


def smoke_postgres() -> None:
    repo = PostgresRepo.from_env()
    if not repo.ping():
        raise RuntimeError("Postgres ping failed")

    record = ArticleRecord(
        record_id=f"smoke-{new_record_id()}",
        url="https://example.com/smoke",
        extraction=ArticleExtraction(title="Smoke", blocks=(Block(BlockType.PARAGRAPH, "ok"),)),
        verdict=QualityVerdict.low("smoke test"),
        tags=frozenset({"smoke"}),
    )
    repo.insert_article(record)
    try:
        stored = repo.get_article(record.record_id)
        if stored is None or stored.tags != record.tags:
            raise RuntimeError("Postgres round-trip failed")
    finally:
        repo.delete_article(record.record_id)


def smoke_serpapi() -> None:
    results = asyncio.run(SerpApiClient().search("weather", 1))
    if not results:
        raise RuntimeError("SerpAPI returned no results")


if __name__ == "__main__":
    load_env_file(Path(".env"))

    print("Running Postgres smoke test...")
    smoke_postgres()
    print("Postgres OK")

    if os.environ.get("SERPAPI_API_KEY"):
        print("Running SerpAPI smoke test...")
        smoke_serpapi()
        print("SerpAPI OK")
    else:
        print("SERPAPI_API_KEY not set; skipping SerpAPI")
