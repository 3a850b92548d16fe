from __future__ import annotations

import os
from pathlib import Path

import pytest

from dailyscan.utils import load_env_file, normalize_terms


def test_normalize_terms_trims_and_dedupes_in_order() -> None:
    assert normalize_terms([" b ", "a", "", "b", "  ", "c"]) == ["b", "a", "c"]
    assert normalize_terms(None) == []


def test_load_env_file_respects_existing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        "# comment\nDAILYSCAN_TEST_A='one'\nDAILYSCAN_TEST_B=\"two\"\nnot a pair\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("DAILYSCAN_TEST_A", raising=False)
    monkeypatch.setenv("DAILYSCAN_TEST_B", "kept")

    loaded = load_env_file(env_path)

    assert loaded == {"DAILYSCAN_TEST_A": "one"}
    assert os.environ["DAILYSCAN_TEST_A"] == "one"
    assert os.environ["DAILYSCAN_TEST_B"] == "kept"
    monkeypatch.delenv("DAILYSCAN_TEST_A", raising=False)


def test_load_env_file_missing(tmp_path: Path) -> None:
    assert load_env_file(tmp_path / ".env") == {}
