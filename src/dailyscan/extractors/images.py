from __future__ import annotations

from urllib.parse import urljoin

from bs4.element import Tag

from dailyscan.extractors.dom import normalize_text
from dailyscan.models import ImageRef

DEFAULT_MAX_IMAGES = 10


def _resolve(src: str, base_url: str | None) -> str:
    if src.startswith("data:"):
        return src
    if src.startswith("//"):
        return f"https:{src}"
    if base_url:
        return urljoin(base_url, src)
    return src


def extract_image_refs(
    fragment: Tag,
    base_url: str | None = None,
    max_images: int = DEFAULT_MAX_IMAGES,
) -> tuple[ImageRef, ...]:
    """Collect `<img src>` references from the article fragment in document order."""
    refs: list[ImageRef] = []
    seen: set[str] = set()
    for img in fragment.find_all("img", src=True):
        src = str(img.get("src", "")).strip()
        if not src:
            continue
        url = _resolve(src, base_url)
        if url in seen:
            continue
        seen.add(url)
        alt = normalize_text(str(img.get("alt", ""))) or None
        refs.append(ImageRef(source_url=url, alt_text=alt))
        if len(refs) >= max_images:
            break
    return tuple(refs)
