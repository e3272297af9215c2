import logging
import uuid
from pathlib import Path
from typing import Iterable, List

from .utils import json_log


class Storage:
    def __init__(self, base: Path = Path("storage")):
        self.base = Path(base)

    @property
    def tmp_dir(self) -> Path:
        return self.base / "tmp"

    def ensure_layout(self):
        for p in [self.base, self.tmp_dir]:
            p.mkdir(parents=True, exist_ok=True)

    def new_run_dir(self) -> Path:
        """
        Create a directory unique to one pipeline run. Concurrent runs for different
        users never share file names, so nothing here needs locking.
        """
        p = self.tmp_dir / uuid.uuid4().hex
        p.mkdir(parents=True, exist_ok=False)
        return p

    def image_path(self, run_dir: Path, ordinal: int) -> Path:
        return run_dir / f"image-{ordinal:04d}.jpg"

    def pdf_path(self, run_dir: Path) -> Path:
        # the user-chosen name is only the attachment filename, never a path on disk
        return run_dir / "document.pdf"

    def delete_files(self, paths: Iterable[Path]) -> List[Path]:
        """
        Delete every path independently; one failure never blocks the others.
        Returns the paths that could not be removed.
        """
        failed: List[Path] = []
        for p in paths:
            try:
                Path(p).unlink(missing_ok=True)
            except Exception as e:
                failed.append(Path(p))
                json_log("cleanup_delete_failed", level=logging.WARNING, path=str(p), error=str(e))
        return failed

    def remove_run_dir(self, run_dir: Path):
        try:
            for leftover in run_dir.iterdir():
                self.delete_files([leftover])
            run_dir.rmdir()
        except FileNotFoundError:
            pass
        except Exception as e:
            json_log("cleanup_rmdir_failed", level=logging.WARNING, path=str(run_dir), error=str(e))
