from __future__ import annotations

import pytest

from dailyscan.discovery.url_utils import canonicalise_url, validate_url
from dailyscan.errors import InvalidInputError


def test_canonicalise_url_strips_utm_and_fragment() -> None:
    url = "https://example.com/path?utm_source=abc&utm_campaign=test&keep=1#section"
    assert canonicalise_url(url) == "https://example.com/path?keep=1"


def test_validate_url_trims() -> None:
    assert validate_url("  https://example.com/a  ") == "https://example.com/a"


@pytest.mark.parametrize(
    ("url", "message"),
    [
        ("", "Empty URL"),
        ("   ", "Empty URL"),
        ("ftp://example.com/file", "Unsupported URL scheme"),
        ("example.com/no-scheme", "Unsupported URL scheme"),
        ("https:///path-only", "no host"),
    ],
)
def test_validate_url_rejects(url: str, message: str) -> None:
    with pytest.raises(InvalidInputError, match=message) as excinfo:
        validate_url(url)
    assert excinfo.value.error_class == "invalid_input"
