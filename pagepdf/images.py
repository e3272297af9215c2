import io
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx
from PIL import Image

from .errors import FetchError


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/58.0.3029.110 Safari/537.3"
)

SUPPORTED_SUFFIXES = (".jpg", ".jpeg", ".webp")


def is_inline(source_ref: str) -> bool:
    return source_ref.startswith("data:")


def is_webp(source_ref: str) -> bool:
    return source_ref.endswith(".webp")


def is_eligible(source_ref: str) -> bool:
    """
    Only remote .jpg/.jpeg/.webp sources are kept. The suffix match is case-sensitive
    and applies to the full reference, so 'photo.JPG' and 'photo.jpg?w=200' are skipped.
    """
    if not source_ref or is_inline(source_ref):
        return False
    return source_ref.endswith(SUPPORTED_SUFFIXES)


class ImageFetcher:
    def __init__(self, timeout: float = 60, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def fetch(self, source_ref: str) -> bytes:
        scheme = urlparse(source_ref).scheme
        if scheme not in ("http", "https"):
            raise FetchError(source_ref, f"unsupported scheme {scheme!r}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport, follow_redirects=True) as client:
                resp = await client.get(source_ref, headers={"User-Agent": USER_AGENT})
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as e:
            raise FetchError(source_ref, str(e) or e.__class__.__name__) from e


def decode_dimensions(data: bytes) -> Tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as im:
            return im.size
    except Exception as e:
        raise FetchError("<bytes>", f"cannot decode image: {e}") from e


def transcode_webp_to_jpeg(data: bytes, quality: int = 90) -> bytes:
    """
    Re-encode a WEBP payload as baseline JPEG with the same pixel dimensions.
    Alpha is flattened onto white since JPEG has no transparency.
    """
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            if im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info):
                rgba = im.convert("RGBA")
                flat = Image.new("RGB", rgba.size, (255, 255, 255))
                flat.paste(rgba, mask=rgba.split()[-1])
                out_im = flat
            else:
                out_im = im.convert("RGB")
            buf = io.BytesIO()
            out_im.save(buf, format="JPEG", quality=quality, progressive=False)
            return buf.getvalue()
    except Exception as e:
        raise FetchError("<bytes>", f"cannot transcode webp: {e}") from e
