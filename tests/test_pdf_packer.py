from __future__ import annotations

import re

import pytest

from conftest import image_bytes
from pagepdf.pdf_packer import PDFComposer


def write_image(path, size):
    path.write_bytes(image_bytes(size=size))
    return path


def test_each_page_matches_its_image_size(tmp_path):
    composer = PDFComposer()
    handle = composer.new_document(tmp_path / "out.pdf", title="report")
    composer.add_page(handle, 30, 20, write_image(tmp_path / "a.jpg", (30, 20)))
    composer.add_page(handle, 15, 45, write_image(tmp_path / "b.jpg", (15, 45)))

    path = composer.finalize(handle)
    pdf = path.read_bytes()

    assert pdf.startswith(b"%PDF")
    assert len(re.findall(rb"/Type /Page\b", pdf)) == 2
    boxes = re.findall(rb"/MediaBox \[ 0 0 (\d+) (\d+) \]", pdf)
    assert [(int(w), int(h)) for w, h in boxes] == [(30, 20), (15, 45)]


def test_finalize_is_idempotent_and_locks_document(tmp_path):
    composer = PDFComposer()
    handle = composer.new_document(tmp_path / "out.pdf")
    composer.add_page(handle, 10, 10, write_image(tmp_path / "a.jpg", (10, 10)))
    first = composer.finalize(handle)
    size = first.stat().st_size
    assert composer.finalize(handle) == first
    assert first.stat().st_size == size
    with pytest.raises(ValueError):
        composer.add_page(handle, 10, 10, tmp_path / "a.jpg")


def test_rejects_empty_page_size(tmp_path):
    composer = PDFComposer()
    handle = composer.new_document(tmp_path / "out.pdf")
    with pytest.raises(ValueError):
        composer.add_page(handle, 0, 10, write_image(tmp_path / "a.jpg", (10, 10)))
