"""
Grid Composer

Lays out the captures of one batch into a single labelled summary image:

    +---------------------------------------------+
    |        Batch Summary: 2025-01-01 09:30:00    |   title band
    |  +-------+   +-------+   +-------+          |
    |  | cap 0 |   | cap 1 |   | cap 2 |          |   row 0
    |  |09:30:0|   |09:31:0|   |09:32:0|          |   label band
    |  ...                                        |
    +---------------------------------------------+

Captures are drawn at native resolution in row-major order. Only the first
rows*cols captures are placed; the rest are dropped. Two encodings are
produced: a lossless PNG and a scaled-down JPEG that is sent for analysis.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageDraw, ImageFont

from .batch_store import Batch, Capture
from .errors import DimensionMismatch
from .storage import BatchStorage, summary_base_name

logger = logging.getLogger(__name__)

_FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "Arial.ttf")


@dataclass(frozen=True)
class GridLayout:
    """Fixed layout parameters for the summary grid."""
    rows: int = 3
    cols: int = 3
    padding: int = 20
    label_height: int = 40
    title_height: int = 40
    font_size: int = 20
    border_width: int = 2
    background: str = "#333333"
    border_color: str = "#ffffff"
    label_background: str = "#000000"
    text_color: str = "#ffffff"
    compressed_scale: float = 0.5
    compressed_quality: int = 70

    def __post_init__(self):
        if self.rows < 1 or self.cols < 1:
            raise ValueError(f"grid must be at least 1x1, got {self.rows}x{self.cols}")
        if not 0 < self.compressed_scale <= 1:
            raise ValueError(f"compressed_scale must be in (0, 1], got {self.compressed_scale}")

    @property
    def capacity(self) -> int:
        return self.rows * self.cols

    def canvas_size(self, cell_width: int, cell_height: int) -> tuple[int, int]:
        width = cell_width * self.cols + self.padding * (self.cols + 1)
        height = (
            self.title_height
            + cell_height * self.rows
            + self.padding * (self.rows + 1)
            + self.label_height * self.rows
        )
        return width, height

    def cell_origin(self, index: int, cell_width: int, cell_height: int) -> tuple[int, int]:
        row, col = divmod(index, self.cols)
        x = self.padding + col * (cell_width + self.padding)
        y = self.padding + self.title_height + row * (cell_height + self.padding + self.label_height)
        return x, y

    def compressed_size(self, width: int, height: int) -> tuple[int, int]:
        return (
            max(1, round_half_up(width * self.compressed_scale)),
            max(1, round_half_up(height * self.compressed_scale)),
        )


@dataclass(frozen=True)
class GridCell:
    index: int
    row: int
    col: int
    x: int
    y: int
    capture: Capture
    label: str


@dataclass
class Composite:
    """Rendered summary of one batch."""
    batch_id: str
    rows: int
    cols: int
    cells: List[GridCell]
    canvas_width: int
    canvas_height: int
    high_res_bytes: bytes = field(repr=False)
    compressed_bytes: bytes = field(repr=False)
    compressed_size: tuple[int, int] = (0, 0)
    high_res_path: Optional[Path] = None
    compressed_path: Optional[Path] = None

    @property
    def base_name(self) -> str:
        return summary_base_name(self.batch_id)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@lru_cache(maxsize=8)
def _load_font(size: int) -> ImageFont.ImageFont:
    for name in _FONT_CANDIDATES:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def _draw_centered(draw: ImageDraw.ImageDraw, center: tuple[float, float], text: str, font, fill: str) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = center[0] - (right - left) / 2 - left
    y = center[1] - (bottom - top) / 2 - top
    draw.text((round(x), round(y)), text, font=font, fill=fill)


class GridComposer:
    """
    Composes finalized batches into summary grids.

    Args:
        layout: Grid dimensions and styling.
        storage: Where composed outputs are written by ``compose_batch``.
            When omitted the composite is only returned in memory.
    """

    def __init__(self, layout: Optional[GridLayout] = None, storage: Optional[BatchStorage] = None):
        self.layout = layout or GridLayout()
        self.storage = storage

    def compose(self, batch: Batch) -> Optional[Composite]:
        """Render the grid for ``batch``.

        Returns:
            Optional[Composite]: None when the batch holds no captures.

        Raises:
            DimensionMismatch: if a placed capture differs in size from the first.
        """
        captures = batch.captures
        if not captures:
            logger.info(f"No screenshots found in batch: {batch.id}")
            return None

        layout = self.layout
        placed = captures[: layout.capacity]
        if len(captures) > len(placed):
            logger.info(f"Batch {batch.id} has {len(captures)} captures, dropping {len(captures) - len(placed)}")

        cell_w, cell_h = placed[0].size
        for i, capture in enumerate(placed):
            if capture.size != (cell_w, cell_h):
                raise DimensionMismatch((cell_w, cell_h), capture.size, i)

        width, height = layout.canvas_size(cell_w, cell_h)
        canvas = Image.new("RGB", (width, height), layout.background)
        draw = ImageDraw.Draw(canvas)

        title_font = _load_font(layout.font_size + 4)
        label_font = _load_font(layout.font_size)

        _draw_centered(
            draw,
            (width / 2, layout.padding + layout.title_height / 2),
            f"Batch Summary: {batch.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
            title_font,
            layout.text_color,
        )

        cells: List[GridCell] = []
        bw = layout.border_width
        for i, capture in enumerate(placed):
            row, col = divmod(i, layout.cols)
            x, y = layout.cell_origin(i, cell_w, cell_h)
            label = capture.captured_at.strftime("%H:%M:%S")

            draw.rectangle((x - bw, y - bw, x + cell_w + bw - 1, y + cell_h + bw - 1), fill=layout.border_color)
            canvas.paste(capture.image.convert("RGB"), (x, y))
            draw.rectangle((x, y + cell_h, x + cell_w - 1, y + cell_h + layout.label_height - 1),
                           fill=layout.label_background)
            _draw_centered(
                draw,
                (x + cell_w / 2, y + cell_h + layout.label_height / 2),
                label,
                label_font,
                layout.text_color,
            )
            cells.append(GridCell(i, row, col, x, y, capture, label))

        high_res = BytesIO()
        canvas.save(high_res, "PNG")

        small_size = layout.compressed_size(width, height)
        compressed = BytesIO()
        canvas.resize(small_size, Image.Resampling.LANCZOS).save(
            compressed, "JPEG", quality=layout.compressed_quality
        )

        logger.info(f"Composed {len(cells)} captures for batch {batch.id} ({width}x{height})")
        return Composite(
            batch_id=batch.id,
            rows=layout.rows,
            cols=layout.cols,
            cells=cells,
            canvas_width=width,
            canvas_height=height,
            high_res_bytes=high_res.getvalue(),
            compressed_bytes=compressed.getvalue(),
            compressed_size=small_size,
        )

    async def compose_batch(self, batch: Batch) -> Optional[Composite]:
        """Compose off the event loop and persist both outputs.

        Raises:
            DimensionMismatch: see ``compose``.
            PersistenceFailure: if either output cannot be written.
        """
        logger.info(f"Creating batch summary for: {batch.id}")
        composite = await asyncio.to_thread(self.compose, batch)
        if composite is None or self.storage is None:
            return composite

        png_path, jpg_path = self.storage.composite_paths(batch.id)
        composite.high_res_path = await self.storage.write_bytes(png_path, composite.high_res_bytes)
        logger.info(f"Batch summary (PNG) saved: {png_path}")
        composite.compressed_path = await self.storage.write_bytes(jpg_path, composite.compressed_bytes)
        logger.info(f"Compressed batch summary (JPEG) saved: {jpg_path}")
        return composite
