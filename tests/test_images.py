from __future__ import annotations

import asyncio
import io

import httpx
import pytest
from PIL import Image

from conftest import image_bytes
from pagepdf.errors import FetchError
from pagepdf.images import (
    USER_AGENT,
    ImageFetcher,
    decode_dimensions,
    is_eligible,
    transcode_webp_to_jpeg,
)


@pytest.mark.parametrize(
    "src, expected",
    [
        ("https://x.test/a.jpg", True),
        ("https://x.test/a.jpeg", True),
        ("https://x.test/a.webp", True),
        ("https://x.test/a.png", False),
        ("https://x.test/a.gif", False),
        ("https://x.test/a.JPG", False),
        ("https://x.test/a.jpg?w=200", False),
        ("data:image/jpeg;base64,/9j/4AAQ.jpg", False),
        ("", False),
    ],
)
def test_is_eligible(src, expected):
    assert is_eligible(src) is expected


def test_transcode_webp_keeps_dimensions_and_drops_alpha():
    webp = image_bytes(fmt="WEBP", size=(64, 48), color=(10, 20, 30, 128), mode="RGBA")
    jpeg = transcode_webp_to_jpeg(webp)
    with Image.open(io.BytesIO(jpeg)) as im:
        assert im.format == "JPEG"
        assert im.mode == "RGB"
        assert im.size == (64, 48)
        assert "progressive" not in im.info


def test_decode_dimensions():
    assert decode_dimensions(image_bytes(size=(7, 9))) == (7, 9)
    with pytest.raises(FetchError):
        decode_dimensions(b"<html>not an image</html>")


def test_fetch_sends_user_agent_and_returns_bytes():
    seen = {}
    payload = image_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers.get("user-agent")
        return httpx.Response(200, content=payload)

    fetcher = ImageFetcher(transport=httpx.MockTransport(handler))
    data = asyncio.run(fetcher.fetch("https://x.test/a.jpg"))
    assert data == payload
    assert seen["ua"] == USER_AGENT


def test_fetch_http_error_becomes_fetch_error():
    fetcher = ImageFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    with pytest.raises(FetchError) as exc:
        asyncio.run(fetcher.fetch("https://x.test/missing.jpg"))
    assert exc.value.source_ref == "https://x.test/missing.jpg"


def test_fetch_rejects_non_http_scheme():
    with pytest.raises(FetchError):
        asyncio.run(ImageFetcher().fetch("file:///etc/passwd.jpg"))
