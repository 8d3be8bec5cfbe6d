"""
On-disk layout for batches and their artifacts.

    <base_dir>/<batch_id>/<YYYY-MM-DD_HH-MM-SS>_display<N>.png
    <base_dir>/<batch_id>/batch_summary_<batch_id>.png
    <base_dir>/<batch_id>/batch_summary_<batch_id>_compressed.jpg
    <base_dir>/<batch_id>/batch_summary_<batch_id>_analysis.txt
    <base_dir>/<batch_id>/batch_summary_<batch_id>_linkedin_image.png

All writes run in a worker thread and surface OS errors as
``PersistenceFailure``.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Union

from .batch_store import Batch, Capture
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)


def summary_base_name(batch_id: str) -> str:
    return f"batch_summary_{batch_id}"


def analysis_path(output_dir: Union[str, Path], base_name: str) -> Path:
    return Path(output_dir) / f"{base_name}_analysis.txt"


def generated_image_path(output_dir: Union[str, Path], base_name: str) -> Path:
    return Path(output_dir) / f"{base_name}_linkedin_image.png"


class BatchStorage:
    """Filesystem persistence for captures and pipeline outputs."""

    def __init__(self, base_dir: Union[str, Path] = "~/.cache/recap/screenshots"):
        self.base_dir = Path(os.path.expanduser(str(base_dir))).resolve()

    def ensure_base_dir(self) -> Path:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceFailure(f"cannot create {self.base_dir}: {exc}") from exc
        return self.base_dir

    def batch_dir(self, batch_id: str) -> Path:
        return self.base_dir / batch_id

    def capture_path(self, batch: Batch, capture: Capture) -> Path:
        return self.batch_dir(batch.id) / capture.filename

    def composite_paths(self, batch_id: str) -> tuple[Path, Path]:
        """Return (high resolution PNG, compressed JPEG) paths."""
        directory = self.batch_dir(batch_id)
        base = summary_base_name(batch_id)
        return directory / f"{base}.png", directory / f"{base}_compressed.jpg"

    # ─────────────────────────────── writers
    async def save_capture(self, batch: Batch, capture: Capture) -> Path:
        path = self.capture_path(batch, capture)
        await asyncio.to_thread(self._write_image, path, capture)
        logger.info(f"Screenshot saved: {path} (Source: {capture.source_id or 'unknown'})")
        return path

    async def write_bytes(self, path: Union[str, Path], data: bytes) -> Path:
        path = Path(path)
        await asyncio.to_thread(self._write, path, data)
        return path

    async def write_text(self, path: Union[str, Path], text: str) -> Path:
        return await self.write_bytes(path, text.encode("utf-8"))

    # ─────────────────────────────── sync helpers
    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise PersistenceFailure(f"failed to write {path}: {exc}") from exc

    @staticmethod
    def _write_image(path: Path, capture: Capture) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            capture.image.save(path, "PNG")
        except OSError as exc:
            raise PersistenceFailure(f"failed to write {path}: {exc}") from exc
