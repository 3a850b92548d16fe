"""Storage backends for scanned articles."""

from __future__ import annotations

__all__ = ["ArticleRepository", "MemoryRepo", "PostgresConfigError", "PostgresRepo"]

from dailyscan.storage.base import ArticleRepository
from dailyscan.storage.memory_repo import MemoryRepo
from dailyscan.storage.postgres_repo import PostgresConfigError, PostgresRepo
