from __future__ import annotations

import asyncio
import base64
import struct
import zlib
from io import BytesIO
from pathlib import Path

import httpx
import pytest
from PIL import Image

from dailyscan.errors import ImageDownloadError
from dailyscan.fetchers.images import ImageDownloader, decode_data_url, image_dimensions
from dailyscan.models import ImageRef, StageStatus


def _png(width: int = 3, height: int = 2) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color=(200, 10, 10)).save(buffer, "PNG")
    return buffer.getvalue()


def _png_header(width: int, height: int) -> bytes:
    def chunk(kind: bytes, payload: bytes) -> bytes:
        return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


def test_decode_data_url() -> None:
    payload = _png()
    data, media_type = decode_data_url("data:image/png;base64," + base64.b64encode(payload).decode())
    assert data == payload
    assert media_type == "image/png"

    text, text_type = decode_data_url("data:,hello%20world")
    assert text == b"hello world"
    assert text_type is None


def test_decode_data_url_rejects_malformed() -> None:
    with pytest.raises(ImageDownloadError):
        decode_data_url("data:image/png;base64")


def test_image_dimensions() -> None:
    assert image_dimensions(_png(5, 4)) == (5, 4)
    assert image_dimensions(b"not an image") == (None, None)


def test_download_all_keeps_good_images_and_drops_failures(tmp_path: Path) -> None:
    png = _png()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/a.png":
            return httpx.Response(200, content=png, headers={"content-type": "image/png"})
        return httpx.Response(404)

    downloader = ImageDownloader(images_dir=tmp_path / "images", transport=httpx.MockTransport(handler))
    refs = [
        ImageRef(source_url="data:image/png;base64," + base64.b64encode(png).decode(), alt_text="inline"),
        ImageRef(source_url="https://img.example.com/a.png"),
        ImageRef(source_url="https://img.example.com/missing.png"),
    ]

    result = asyncio.run(downloader.download_all(refs))

    assert result.status is StageStatus.DEGRADED
    assert result.value is not None
    assert [image.source_url for image in result.value] == [refs[0].source_url, refs[1].source_url]
    assert result.value[0].alt_text == "inline"
    for image in result.value:
        assert (image.width, image.height) == (3, 2)
        assert image.size_bytes == len(png)
        assert image.local_path is not None
        assert Path(image.local_path).read_bytes() == png
        assert image.local_path.endswith(".png")
    assert len(result.notes) == 1
    assert "missing.png" in result.notes[0]


def test_download_all_without_directory_keeps_bytes_only() -> None:
    png = _png()
    downloader = ImageDownloader(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=png)))

    result = asyncio.run(downloader.download_all([ImageRef(source_url="https://img.example.com/x")]))

    assert result.status is StageStatus.SUCCEEDED
    assert result.value is not None
    assert result.value[0].local_path is None
    assert result.value[0].data == png


def test_download_all_with_no_refs() -> None:
    result = asyncio.run(ImageDownloader().download_all([]))
    assert result.status is StageStatus.SUCCEEDED
    assert result.value == ()


def test_image_dimensions_of_oversized_image_are_unknown() -> None:
    assert image_dimensions(_png_header(30000, 30000)) == (None, None)


def test_download_all_keeps_oversized_image_without_dimensions() -> None:
    header = _png_header(30000, 30000)
    downloader = ImageDownloader(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=header)))

    result = asyncio.run(downloader.download_all([ImageRef(source_url="https://img.example.com/huge.png")]))

    assert result.status is StageStatus.SUCCEEDED
    assert result.value is not None
    assert (result.value[0].width, result.value[0].height) == (None, None)
    assert result.value[0].data == header


def test_download_all_drops_unexpected_errors() -> None:
    png = _png()

    class BrokenDownloader(ImageDownloader):
        async def download(self, ref, client, token):
            if ref.source_url.endswith("bad.png"):
                raise ValueError("unexpected decoder state")
            return await super().download(ref, client, token)

    downloader = BrokenDownloader(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=png)))
    refs = [
        ImageRef(source_url="https://img.example.com/bad.png"),
        ImageRef(source_url="https://img.example.com/ok.png"),
    ]

    result = asyncio.run(downloader.download_all(refs))

    assert result.status is StageStatus.DEGRADED
    assert result.value is not None
    assert [image.source_url for image in result.value] == [refs[1].source_url]
    assert "unexpected decoder state" in result.notes[0]
