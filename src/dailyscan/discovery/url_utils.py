from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from dailyscan.errors import InvalidInputError

UTM_PREFIX = "utm_"
ALLOWED_SCHEMES = ("http", "https")


def canonicalise_url(url: str) -> str:
    parts = urlsplit(url)
    query_pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith(UTM_PREFIX)
    ]
    query = urlencode(query_pairs, doseq=True)
    normalized = parts._replace(query=query, fragment="")
    return urlunsplit(normalized)


def validate_url(url: str) -> str:
    """Return the trimmed URL, or raise InvalidInputError for anything not fetchable."""
    candidate = (url or "").strip()
    if not candidate:
        raise InvalidInputError("Empty URL", url=url)
    try:
        parts = urlsplit(candidate)
    except ValueError as exc:
        raise InvalidInputError(f"Malformed URL: {exc}", url=url) from exc
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidInputError(f"Unsupported URL scheme {parts.scheme!r}", url=url)
    if not parts.netloc:
        raise InvalidInputError("URL has no host", url=url)
    return candidate
