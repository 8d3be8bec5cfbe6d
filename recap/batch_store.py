"""
Batch Store

Owns the lifecycle of screenshot batches. A batch collects timestamped
captures in the order they were taken until the scheduler rotates it; the
finalized batch is then handed to the grid composer while a fresh batch keeps
accepting captures.

All pointer mutation happens synchronously inside this class, so under a
single asyncio loop no lock is needed: a rotation can never interleave with
the in-memory part of an append.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from PIL import Image

from .errors import NoOpenBatch, NothingToFinalize

logger = logging.getLogger(__name__)

BATCH_ID_FORMAT = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True, eq=False)
class Capture:
    """A single screenshot of one display. Captures compare by identity."""
    display_index: int
    captured_at: datetime
    image: Image.Image
    source_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.display_index < 0:
            raise ValueError(f"display_index must be >= 0, got {self.display_index}")

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    @property
    def filename(self) -> str:
        return f"{self.captured_at.strftime(BATCH_ID_FORMAT)}_display{self.display_index}.png"


class BatchState(Enum):
    OPEN = "open"
    FINALIZED = "finalized"


class Batch:
    """An ordered collection of captures taken during one batch window."""

    def __init__(self, batch_id: str, created_at: datetime):
        self.id = batch_id
        self.created_at = created_at
        self.state = BatchState.OPEN
        self._captures: List[Capture] = []

    @property
    def captures(self) -> tuple[Capture, ...]:
        """Snapshot of the captures in insertion order."""
        return tuple(self._captures)

    @property
    def is_open(self) -> bool:
        return self.state is BatchState.OPEN

    def __len__(self) -> int:
        return len(self._captures)

    def __repr__(self) -> str:
        return f"Batch(id={self.id!r}, state={self.state.value}, captures={len(self._captures)})"

    def _add(self, capture: Capture) -> None:
        if not self.is_open:
            raise NoOpenBatch(f"batch {self.id} is {self.state.value}")
        self._captures.append(capture)

    def _finalize(self) -> None:
        self.state = BatchState.FINALIZED


PersistCallback = Callable[[Batch, Capture], Awaitable[Any]]


class BatchStore:
    """
    Holds the single open batch and hands out finalized ones.

    Args:
        persist: Optional coroutine called after each append with the batch
            the capture landed in, e.g. ``BatchStorage.save_capture``.
        clock: Callable returning the current time, used for batch ids.
    """

    def __init__(
        self,
        persist: Optional[PersistCallback] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._persist = persist
        self._clock = clock
        self._current: Optional[Batch] = None
        self._last_id: Optional[str] = None
        self._id_repeat = 0

    @property
    def current(self) -> Optional[Batch]:
        return self._current

    def start_new(self) -> Batch:
        """Open a fresh batch, replacing the current pointer.

        The previous batch must already have been finalized by the caller;
        any captures still in it are no longer reachable from the store.
        """
        created_at = self._clock()
        batch = Batch(self._next_id(created_at), created_at)
        if self._current is not None and self._current.is_open and len(self._current):
            logger.warning(
                f"Replacing open batch {self._current.id} with {len(self._current)} pending captures"
            )
        self._current = batch
        logger.info(f"Started batch {batch.id}")
        return batch

    def ensure_open(self) -> Batch:
        """Return the open batch, starting one if none exists."""
        if self._current is None or not self._current.is_open:
            return self.start_new()
        return self._current

    async def append(self, capture: Capture) -> Batch:
        """Append a capture to the open batch.

        The capture is added before the first await, so a rotation that
        happens while persistence is in flight cannot move it.

        Returns:
            Batch: the batch the capture was added to.

        Raises:
            NoOpenBatch: if no batch is open.
        """
        batch = self._current
        if batch is None:
            raise NoOpenBatch("no batch is open; call start_new() first")
        batch._add(capture)
        logger.debug(f"Added {capture.filename} to batch {batch.id} (size: {len(batch)})")

        if self._persist is not None:
            await self._persist(batch, capture)
        return batch

    def finalize(self) -> Batch:
        """Finalize the open batch and clear the pointer.

        Raises:
            NothingToFinalize: if no batch is open.
        """
        batch = self._current
        if batch is None:
            raise NothingToFinalize("no batch has been opened")
        batch._finalize()
        self._current = None
        logger.info(f"Finalized batch {batch.id} with {len(batch)} captures")
        return batch

    def rotate(self) -> Optional[Batch]:
        """Finalize the open batch and immediately open the next one.

        Returns:
            Optional[Batch]: the finalized batch, or None when there was
            nothing to finalize (a new batch is opened either way).
        """
        try:
            finished = self.finalize()
        except NothingToFinalize:
            finished = None
        self.start_new()
        return finished

    def _next_id(self, created_at: datetime) -> str:
        base = created_at.strftime(BATCH_ID_FORMAT)
        if base == self._last_id:
            self._id_repeat += 1
            return f"{base}-{self._id_repeat + 1}"
        self._last_id = base
        self._id_repeat = 0
        return base
