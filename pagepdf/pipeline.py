import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from .errors import NavigationError
from .images import ImageFetcher, decode_dimensions, is_eligible, is_webp, transcode_webp_to_jpeg
from .pdf_packer import PDFComposer
from .renderer import PageRenderer
from .storage import Storage
from .utils import json_log


LOAD_FAILED_MESSAGE = "Sorry, I failed to load the page. Please check the link and try again."
NO_IMAGES_MESSAGE = "I couldn't find any .jpg, .jpeg or .webp images on that page, so no PDF was created."
SEND_FAILED_MESSAGE = "Sorry, there was an error sending the PDF. Please try again."
GENERIC_FAILED_MESSAGE = "Sorry, something went wrong while creating the PDF. Please try again."


class CandidateStatus(str, Enum):
    PENDING = "pending"
    FETCHED = "fetched"
    CONVERTED = "converted"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ImageCandidate:
    source_ref: str
    ordinal_position: int
    status: CandidateStatus = CandidateStatus.PENDING
    path: Optional[Path] = None
    width: int = 0
    height: int = 0
    error: Optional[str] = None


@dataclass
class PipelineResult:
    url: str
    output_name: str
    delivered: bool = False
    pages: int = 0
    candidates: List[ImageCandidate] = field(default_factory=list)
    error: Optional[str] = None


def extract_candidates(sources: List[str]) -> List[ImageCandidate]:
    candidates = []
    for i, src in enumerate(sources):
        c = ImageCandidate(source_ref=src, ordinal_position=i)
        if not is_eligible(src):
            c.status = CandidateStatus.SKIPPED
        candidates.append(c)
    return candidates


class DocumentPipeline:
    """
    URL -> rendered page -> eligible <img> sources -> concurrent fetch/normalize ->
    one PDF page per image in DOM order -> chat attachment -> cleanup.

    generate_document() never raises: every outcome ends in either a delivered
    document or a failure notice sent through the reply channel, and the per-run
    temp directory is removed on all paths.
    """

    def __init__(
        self,
        storage: Storage,
        renderer: Optional[PageRenderer] = None,
        fetcher: Optional[ImageFetcher] = None,
        composer: Optional[PDFComposer] = None,
        navigation_timeout_ms: int = 120000,
    ):
        self.storage = storage
        self.renderer = renderer or PageRenderer()
        self.fetcher = fetcher or ImageFetcher()
        self.composer = composer or PDFComposer()
        self.navigation_timeout_ms = navigation_timeout_ms

    async def generate_document(self, url: str, output_name: str, reply: Any) -> PipelineResult:
        result = PipelineResult(url=url, output_name=output_name)
        run_dir: Optional[Path] = None
        pdf_path: Optional[Path] = None
        try:
            try:
                sources = await self.renderer.render(url, self.navigation_timeout_ms)
            except NavigationError as e:
                result.error = str(e)
                json_log("navigation_failed", level=logging.WARNING, url=url, error=str(e))
                await self._notify(reply, LOAD_FAILED_MESSAGE)
                return result

            candidates = extract_candidates(sources)
            result.candidates = candidates
            for c in candidates:
                if c.status is CandidateStatus.SKIPPED:
                    json_log("image_skipped_unsupported", src=c.source_ref[:200], index=c.ordinal_position)

            run_dir = self.storage.new_run_dir()
            eligible = [c for c in candidates if c.status is CandidateStatus.PENDING]
            # join point: every fetch settles (success or failure) before assembly
            await asyncio.gather(*(self._fetch_one(c, run_dir) for c in eligible))

            ready = sorted(
                (c for c in eligible if c.status is CandidateStatus.CONVERTED),
                key=lambda c: c.ordinal_position,
            )
            json_log("images_ready", url=url, eligible=len(eligible), ready=len(ready))
            if not ready:
                await self._notify(reply, NO_IMAGES_MESSAGE)
                return result

            pdf_path = self.storage.pdf_path(run_dir)
            # reportlab reads and embeds every image; keep that work off the event loop
            handle = await asyncio.to_thread(self._assemble, pdf_path, output_name, ready)
            result.pages = len(handle.pages)
            if not result.pages:
                await self._notify(reply, NO_IMAGES_MESSAGE)
                return result

            # the writer must be flushed and closed before delivery reads the file
            pdf_path = await asyncio.to_thread(self.composer.finalize, handle)
            json_log("pdf_finalized", url=url, pages=result.pages, bytes=pdf_path.stat().st_size)

            filename = f"{output_name}.pdf"
            try:
                await reply.reply_document(pdf_path, filename)
                result.delivered = True
                json_log("pdf_delivered", url=url, filename=filename, pages=result.pages)
            except Exception as e:
                result.error = str(e)
                json_log("pdf_send_failed", level=logging.ERROR, filename=filename, error=str(e))
                await self._notify(reply, SEND_FAILED_MESSAGE)
            return result
        except Exception as e:
            result.error = str(e)
            json_log("pipeline_failed", level=logging.ERROR, url=url, error=str(e), error_type=e.__class__.__name__)
            await self._notify(reply, GENERIC_FAILED_MESSAGE)
            return result
        finally:
            self._cleanup(result.candidates, pdf_path, run_dir)

    async def _fetch_one(self, c: ImageCandidate, run_dir: Path):
        try:
            data = await self.fetcher.fetch(c.source_ref)
            c.status = CandidateStatus.FETCHED
            if is_webp(c.source_ref):
                data = await asyncio.to_thread(transcode_webp_to_jpeg, data)
            c.path = self.storage.image_path(run_dir, c.ordinal_position)
            await asyncio.to_thread(c.path.write_bytes, data)
            c.width, c.height = await asyncio.to_thread(self._read_dimensions, c.path)
            c.status = CandidateStatus.CONVERTED
        except Exception as e:
            c.status = CandidateStatus.FAILED
            c.error = str(e)
            json_log("image_fetch_failed", level=logging.WARNING, src=c.source_ref, index=c.ordinal_position, error=str(e))

    def _assemble(self, pdf_path: Path, title: str, ready: List[ImageCandidate]):
        handle = self.composer.new_document(pdf_path, title=title)
        for c in ready:
            try:
                self.composer.add_page(handle, c.width, c.height, c.path)
            except Exception as e:
                c.status = CandidateStatus.FAILED
                c.error = str(e)
                json_log("pdf_add_page_failed", level=logging.WARNING, src=c.source_ref, error=str(e))
        return handle

    @staticmethod
    def _read_dimensions(path: Path):
        return decode_dimensions(path.read_bytes())

    def _cleanup(self, candidates: List[ImageCandidate], pdf_path: Optional[Path], run_dir: Optional[Path]):
        paths = [c.path for c in candidates if c.path is not None]
        if pdf_path is not None:
            paths.append(pdf_path)
        failed = self.storage.delete_files(paths)
        if run_dir is not None:
            self.storage.remove_run_dir(run_dir)
        json_log("pipeline_cleanup", removed=len(paths) - len(failed), failed=len(failed))

    @staticmethod
    async def _notify(reply: Any, text: str):
        try:
            await reply.reply_text(text)
        except Exception as e:
            json_log("reply_failed", level=logging.ERROR, error=str(e))
