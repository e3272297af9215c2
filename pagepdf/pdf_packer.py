from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from reportlab.pdfgen import canvas


@dataclass
class PageInfo:
    image_path: Path
    width: int
    height: int


@dataclass
class PDFDocumentHandle:
    pdf_path: Path
    canvas: canvas.Canvas
    pages: List[PageInfo] = field(default_factory=list)
    finalized: bool = False


class PDFComposer:
    """
    One page per image, each page exactly the image's pixel size, the image drawn
    edge to edge. 1 px maps to 1 pt.
    """

    def new_document(self, pdf_path: Path, title: Optional[str] = None) -> PDFDocumentHandle:
        c = canvas.Canvas(str(pdf_path))
        if title:
            c.setTitle(title)
        return PDFDocumentHandle(pdf_path=Path(pdf_path), canvas=c)

    def add_page(self, handle: PDFDocumentHandle, width: int, height: int, image_path: Path):
        if handle.finalized:
            raise ValueError("document already finalized")
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid page size {width}x{height}")
        c = handle.canvas
        c.setPageSize((width, height))
        c.drawImage(str(image_path), 0, 0, width=width, height=height)
        c.showPage()
        handle.pages.append(PageInfo(image_path=Path(image_path), width=width, height=height))

    def finalize(self, handle: PDFDocumentHandle) -> Path:
        """
        Write the document to disk. Returns only after the file is fully written and closed.
        """
        if not handle.finalized:
            handle.canvas.save()
            handle.finalized = True
        return handle.pdf_path
