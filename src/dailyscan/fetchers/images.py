from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass, field, replace
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Iterable
from urllib.parse import unquote, urlsplit
from uuid import uuid4

import httpx
from PIL import Image, UnidentifiedImageError

from dailyscan.cancellation import CancellationToken
from dailyscan.config import FetchConfig
from dailyscan.errors import Cancelled, ImageDownloadError
from dailyscan.fetchers.http import browser_headers
from dailyscan.models import ImageRef, StageResult, StageStatus

IMAGES_STAGE = "images"
DEFAULT_EXTENSION = ".jpg"


def decode_data_url(url: str) -> tuple[bytes, str | None]:
    """Decode a `data:` URL into its payload and declared media type."""
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:"):
        raise ImageDownloadError("Malformed data URL", url=url[:64])
    params = header[len("data:") :].split(";")
    media_type = params[0] or None
    if "base64" in params[1:]:
        try:
            return base64.b64decode(payload, validate=False), media_type
        except ValueError as exc:
            raise ImageDownloadError(f"Invalid base64 data URL: {exc}", url=url[:64]) from exc
    return unquote(payload).encode("utf-8"), media_type


def image_dimensions(data: bytes) -> tuple[int | None, int | None]:
    try:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        return None, None
    return width, height


def _extension(url: str, media_type: str | None) -> str:
    if not url.startswith("data:"):
        suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
        if suffix and len(suffix) <= 6:
            return suffix
    if media_type:
        guessed = mimetypes.guess_extension(media_type.split(";")[0].strip())
        if guessed:
            return guessed
    return DEFAULT_EXTENSION


@dataclass
class ImageDownloader:
    """Best-effort image fetcher; each failed image is dropped on its own."""

    images_dir: Path | None = None
    config: FetchConfig = field(default_factory=FetchConfig)
    transport: httpx.AsyncBaseTransport | None = None

    async def download(
        self,
        ref: ImageRef,
        client: httpx.AsyncClient,
        token: CancellationToken,
    ) -> ImageRef:
        token.raise_if_cancelled()
        if ref.source_url.startswith("data:"):
            data, media_type = decode_data_url(ref.source_url)
        else:
            try:
                response = await token.guard(client.get(ref.source_url))
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise ImageDownloadError(f"{type(exc).__name__}: {exc}", url=ref.source_url) from exc
            token.raise_if_cancelled()
            if response.status_code != 200:
                raise ImageDownloadError(f"HTTP {response.status_code}", url=ref.source_url)
            data = response.content
            media_type = response.headers.get("content-type")
        if not data:
            raise ImageDownloadError("Empty image payload", url=ref.source_url)

        width, height = image_dimensions(data)
        local_path = self._save(data, ref.source_url, media_type)
        return replace(ref, local_path=local_path, width=width, height=height, data=data)

    async def download_all(
        self,
        refs: Iterable[ImageRef],
        token: CancellationToken | None = None,
    ) -> StageResult[tuple[ImageRef, ...]]:
        token = token or CancellationToken()
        pending = list(refs)
        if not pending:
            return StageResult(IMAGES_STAGE, StageStatus.SUCCEEDED, ())

        downloaded: list[ImageRef] = []
        notes: list[str] = []
        async with httpx.AsyncClient(
            timeout=self.config.timeout,
            headers=browser_headers(self.config.user_agent, self.config.accept_language),
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            for ref in pending:
                try:
                    downloaded.append(await self.download(ref, client, token))
                except Cancelled:
                    raise
                except Exception as exc:
                    notes.append(f"dropped {ref.source_url[:120]}: {exc}")
        status = StageStatus.DEGRADED if notes else StageStatus.SUCCEEDED
        return StageResult(IMAGES_STAGE, status, tuple(downloaded), tuple(notes))

    def _save(self, data: bytes, url: str, media_type: str | None) -> str | None:
        if self.images_dir is None:
            return None
        self.images_dir.mkdir(parents=True, exist_ok=True)
        path = self.images_dir / f"{uuid4().hex}{_extension(url, media_type)}"
        path.write_bytes(data)
        return str(path)
