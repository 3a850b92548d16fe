from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable


def normalize_terms(values: Iterable[str] | None) -> list[str]:
    """Trim, drop empties and de-duplicate while preserving first-seen order."""
    if not values:
        return []

    terms: list[str] = []
    seen: set[str] = set()
    for raw in values:
        term = str(raw).strip()
        if not term or term in seen:
            continue
        seen.add(term)
        terms.append(term)
    return terms


def load_env_file(path: Path | str, override: bool = False) -> dict[str, str]:
    """Load a .env file into os.environ, returning the keys set."""
    env_path = Path(path)
    if not env_path.exists():
        return {}

    loaded: dict[str, str] = {}
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if not key:
            continue
        if not override and key in os.environ:
            continue
        os.environ[key] = value
        loaded[key] = value
    return loaded
