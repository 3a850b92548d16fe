from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml


def _coerce_bool(value: bool | str | int) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "y", "on"}:
            return True
        if normalized in {"false", "0", "no", "n", "off"}:
            return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _coerce_int(value: int | str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid integer value: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer value: {value!r}") from exc


def _coerce_float(value: float | int | str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Invalid number value: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid number value: {value!r}") from exc


def _optional_path(value: Path | str | None) -> Path | None:
    if value is None or value == "":
        return None
    return Path(value)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15"
)


@dataclass
class FetchConfig:
    timeout: float = 30.0
    max_attempts: int = 3
    backoff_base: float = 0.1
    backoff_factor: float = 3.0
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.9,de;q=0.8"

    def __post_init__(self) -> None:
        self.timeout = _coerce_float(self.timeout)
        self.max_attempts = _coerce_int(self.max_attempts)
        self.backoff_base = _coerce_float(self.backoff_base)
        self.backoff_factor = _coerce_float(self.backoff_factor)
        if self.max_attempts < 1:
            raise ValueError("fetch.max_attempts must be at least 1")


@dataclass
class ExtractionConfig:
    render_enabled: bool = True
    render_min_words: int = 200
    render_max_link_density: float = 1.5
    render_settle_seconds: float = 3.0
    download_images: bool = True
    max_images: int = 10
    images_dir: Path | None = Path("images")
    document_order: bool = False

    def __post_init__(self) -> None:
        self.render_enabled = _coerce_bool(self.render_enabled)
        self.render_min_words = _coerce_int(self.render_min_words)
        self.render_max_link_density = _coerce_float(self.render_max_link_density)
        self.render_settle_seconds = _coerce_float(self.render_settle_seconds)
        self.download_images = _coerce_bool(self.download_images)
        self.max_images = _coerce_int(self.max_images)
        self.images_dir = _optional_path(self.images_dir)
        self.document_order = _coerce_bool(self.document_order)


@dataclass
class QualityConfig:
    terms_file: Path = Path("quality_terms.yaml")
    min_word_count: int = 50
    min_reading_time: int = 1
    max_link_density: float = 0.3
    min_content_length: int = 200

    def __post_init__(self) -> None:
        self.terms_file = Path(self.terms_file)
        self.min_word_count = _coerce_int(self.min_word_count)
        self.min_reading_time = _coerce_int(self.min_reading_time)
        self.max_link_density = _coerce_float(self.max_link_density)
        self.min_content_length = _coerce_int(self.min_content_length)


@dataclass
class PipelineConfig:
    max_results: int = 10
    concurrency: int = 1
    summarise: bool = True

    def __post_init__(self) -> None:
        self.max_results = _coerce_int(self.max_results)
        self.concurrency = _coerce_int(self.concurrency)
        self.summarise = _coerce_bool(self.summarise)
        if self.max_results < 1:
            raise ValueError("pipeline.max_results must be at least 1")
        if self.concurrency < 1:
            raise ValueError("pipeline.concurrency must be at least 1")


@dataclass
class LoggingConfig:
    events_path: Path | None = None

    def __post_init__(self) -> None:
        self.events_path = _optional_path(self.events_path)


@dataclass
class AppConfig:
    fetch: FetchConfig = field(default_factory=FetchConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppConfig":
        return cls(
            fetch=FetchConfig(**_section(data, "fetch")),
            extraction=ExtractionConfig(**_section(data, "extraction")),
            quality=QualityConfig(**_section(data, "quality")),
            pipeline=PipelineConfig(**_section(data, "pipeline")),
            logging=LoggingConfig(**_section(data, "logging")),
        )


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {name!r} must be a mapping")
    return value


DEFAULT_CONFIG_PATH = Path("config.yaml")
ENV_PREFIX = "DAILYSCAN__"


def _deep_set(target: dict[str, Any], keys: list[str], value: Any, name: str) -> None:
    current = target
    for key in keys[:-1]:
        current = current.setdefault(key, {})
        if not isinstance(current, dict):
            raise ValueError(f"{name} conflicts with another override for section {key!r}")
    if isinstance(current.get(keys[-1]), dict):
        raise ValueError(f"{name} conflicts with nested overrides under {keys[-1]!r}")
    current[keys[-1]] = value


def _parse_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        if not path or any(not part for part in path):
            continue
        _deep_set(overrides, path, value, key)
    return overrides


def _merge_dicts(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: Path | str = DEFAULT_CONFIG_PATH,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    config_path = Path(path)
    data: dict[str, Any] = {}
    if config_path.exists():
        raw = config_path.read_text(encoding="utf-8")
        loaded = yaml.safe_load(raw) or {}
        if not isinstance(loaded, dict):
            raise ValueError("config.yaml must define a mapping at the top level")
        data = loaded

    env_overrides = _parse_env_overrides(env if env is not None else os.environ)
    merged = _merge_dicts(data, env_overrides)
    return AppConfig.from_dict(merged)
