"""Shared fixtures: a manual scheduler, a recording reply channel, temp storage and db."""

from __future__ import annotations

import io
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest
from PIL import Image

from pagepdf.db import AdminDirectory
from pagepdf.storage import Storage

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


class FakeHandle:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for loop.call_later; time only moves on advance()."""

    def __init__(self):
        self.now = 0.0
        self.handles: List[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        h = FakeHandle(self.now + delay, callback)
        self.handles.append(h)
        return h

    def live(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and h.due > self.now]

    def advance(self, seconds: float):
        self.now += seconds
        due = sorted((h for h in self.handles if not h.cancelled and h.due <= self.now), key=lambda h: h.due)
        for h in due:
            self.handles.remove(h)
            h.callback()


class RecordingReplier:
    def __init__(self, fail_documents: bool = False):
        self.texts: List[str] = []
        self.documents: List[Tuple[Path, str, bytes]] = []
        self.fail_documents = fail_documents

    async def reply_text(self, text: str):
        self.texts.append(text)

    async def reply_document(self, path: Path, filename: str):
        if self.fail_documents:
            raise RuntimeError("upload rejected")
        self.documents.append((Path(path), filename, Path(path).read_bytes()))


def image_bytes(fmt: str = "JPEG", size: Tuple[int, int] = (40, 30), color=(200, 30, 30), mode: str = "RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def replier() -> RecordingReplier:
    return RecordingReplier()


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    s = Storage(base=tmp_path / "storage")
    s.ensure_layout()
    return s


@pytest.fixture
def directory(tmp_path: Path) -> AdminDirectory:
    d = AdminDirectory(path=tmp_path / "admins.db")
    d.init()
    d.ensure_original("1000")
    return d


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    return image_bytes


def tmp_entries(storage: Storage, pattern: Optional[str] = "*") -> List[Path]:
    return sorted(storage.tmp_dir.rglob(pattern))
