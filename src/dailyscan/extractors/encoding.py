from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from typing import Sequence

from dailyscan.errors import EncodingFailed

SNIFF_BYTES = 8192
DEFAULT_FALLBACKS: tuple[str, ...] = ("utf-8", "cp1252", "latin-1")

# UTF-32 marks share a prefix with the UTF-16 ones and must be tested first.
_BOMS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
)

_HEADER_CHARSET = re.compile(r"charset\s*=\s*[\"']?([\w:.-]+)", re.IGNORECASE)
_META_CHARSET = re.compile(r"<meta[^>]+charset\s*=\s*[\"']?\s*([\w:.-]+)", re.IGNORECASE)


@dataclass(frozen=True)
class DecodedDocument:
    text: str
    encoding: str
    source: str


def _lookup(name: str | None) -> str | None:
    if not name:
        return None
    try:
        return codecs.lookup(name.strip()).name
    except LookupError:
        return None


def _try_decode(raw: bytes, encoding: str | None) -> str | None:
    codec = _lookup(encoding)
    if codec is None:
        return None
    try:
        return raw.decode(codec)
    except (UnicodeDecodeError, LookupError):
        return None


def charset_from_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    match = _HEADER_CHARSET.search(content_type)
    return match.group(1) if match else None


def sniff_meta_charset(raw: bytes) -> str | None:
    """Find a <meta charset> or http-equiv content-type declaration in the document head."""
    head = raw[:SNIFF_BYTES].decode("latin-1")
    match = _META_CHARSET.search(head)
    return match.group(1) if match else None


def resolve_encoding(
    raw: bytes,
    content_type: str | None = None,
    fallbacks: Sequence[str] = DEFAULT_FALLBACKS,
) -> DecodedDocument:
    header_charset = charset_from_content_type(content_type)
    text = _try_decode(raw, header_charset)
    if text is not None:
        return DecodedDocument(text=text, encoding=_lookup(header_charset) or "", source="header")

    for bom, codec in _BOMS:
        if raw.startswith(bom):
            text = _try_decode(raw[len(bom) :], codec)
            if text is not None:
                return DecodedDocument(text=text, encoding=codec, source="bom")
            break

    meta_charset = sniff_meta_charset(raw)
    text = _try_decode(raw, meta_charset)
    if text is not None:
        return DecodedDocument(text=text, encoding=_lookup(meta_charset) or "", source="meta")

    for fallback in fallbacks:
        text = _try_decode(raw, fallback)
        if text is not None:
            return DecodedDocument(text=text, encoding=_lookup(fallback) or fallback, source="fallback")

    raise EncodingFailed(f"No decodable charset among {', '.join(fallbacks) or 'no fallbacks'}")
