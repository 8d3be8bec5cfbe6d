"""
Batch Scheduler

Drives two independent periodic tasks on one asyncio loop:

* the capture loop takes a screenshot every ``capture_interval`` seconds and
  appends it to the open batch;
* the rotation loop finalizes the open batch every ``batch_interval``
  seconds, opens the next one, and hands the finalized batch to the pipeline
  as a background task so capture is never blocked.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, Set

from .batch_store import BatchStore, Capture
from .errors import CaptureUnavailable, DimensionMismatch, PersistenceFailure
from .grid_composer import Composite
from .notifier import Notifier
from .pipeline import BatchPipeline, PipelineReport

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    AWAITING_FIRST_BATCH = "awaiting_first_batch"
    CAPTURING = "capturing"
    SHOT_TAKEN = "shot_taken"
    BATCH_ROTATING = "batch_rotating"


class BatchScheduler:
    """
    Owns the timing of captures and batch rotations.

    Args:
        store: Batch store holding the open batch.
        screen: Capture provider with ``async capture() -> Capture``.
        pipeline: Downstream stages run for each finalized batch.
        capture_interval: Seconds between captures.
        batch_interval: Seconds between batch rotations.
        notifier: Receives capture and rotation milestones.
        capture_timeout: Upper bound in seconds for one capture call.
    """

    def __init__(
        self,
        store: BatchStore,
        screen,
        pipeline: BatchPipeline,
        capture_interval: float,
        batch_interval: float,
        notifier: Optional[Notifier] = None,
        capture_timeout: Optional[float] = None,
    ):
        if capture_interval <= 0 or batch_interval <= 0:
            raise ValueError("intervals must be positive")
        self.store = store
        self.screen = screen
        self.pipeline = pipeline
        self.capture_interval = capture_interval
        self.batch_interval = batch_interval
        self.notifier = notifier or Notifier(enabled=False)
        self.capture_timeout = capture_timeout

        self.state = SchedulerState.AWAITING_FIRST_BATCH
        self._loops: List[asyncio.Task] = []
        self._pipelines: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._loops)

    @property
    def in_flight(self) -> int:
        return len(self._pipelines)

    # ─────────────────────────────── ticks
    async def capture_tick(self) -> Optional[Capture]:
        """Take one screenshot and append it to the open batch.

        Capture failures are logged and notified; the next tick retries.
        """
        if self.store.current is None or not self.store.current.is_open:
            batch = self.store.start_new()
            self.notifier.notify("New Batch Started", f"Starting new screenshot batch: {batch.id}")
        self.state = SchedulerState.CAPTURING

        try:
            capture = await self._bounded(self.screen.capture(), self.capture_timeout)
            self.state = SchedulerState.SHOT_TAKEN
            batch = await self.store.append(capture)
        except (CaptureUnavailable, PersistenceFailure, asyncio.TimeoutError) as e:
            logger.error(f"Error taking screenshot: {e}")
            self.notifier.notify("Screenshot Error", f"Failed to capture screenshot: {e}")
            return None
        except Exception as e:
            logger.exception("Unexpected error taking screenshot")
            self.notifier.notify("Screenshot Error", f"Failed to capture screenshot: {e}")
            return None
        finally:
            self.state = SchedulerState.CAPTURING

        logger.info(
            f"Screen {capture.display_index} captured at {capture.captured_at:%H:%M:%S} "
            f"into batch {batch.id} ({len(batch)} total)"
        )
        return capture

    async def rotate_tick(self) -> Optional[asyncio.Task]:
        """Rotate the batch and start the pipeline for the finished one.

        The finalize/start pair runs before any await, so no capture appended
        after this call can land in the finalized batch.

        Returns:
            Optional[asyncio.Task]: the pipeline task, or None on first run.
        """
        self.state = SchedulerState.BATCH_ROTATING
        try:
            finished = self.store.rotate()
        finally:
            self.state = SchedulerState.CAPTURING

        if finished is None:
            self.notifier.notify("New Batch Started", f"Starting new screenshot batch: {self.store.current.id}")
            return None

        return self._spawn(
            self.pipeline.process_batch(finished), f"pipeline-{finished.id}", f"Processing batch {finished.id}"
        )

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str, label: str) -> asyncio.Task:
        """Run ``coro`` as a tracked background task that never raises."""
        task = asyncio.create_task(self._guarded(coro, name, label), name=name)
        self._pipelines.add(task)
        task.add_done_callback(self._pipelines.discard)
        return task

    async def _guarded(self, coro: Coroutine[Any, Any, Any], name: str, label: str):
        try:
            return await coro
        except asyncio.CancelledError:
            logger.warning(f"{name} abandoned")
            raise
        except Exception:
            logger.exception(f"{name} failed")
            self.notifier.notify("Pipeline Error", f"{label} failed unexpectedly")
            return None

    # ─────────────────────────────── manual actions
    async def summarize_current(self) -> Optional[Composite]:
        """Compose the open batch as it stands, without finalizing it."""
        batch = self.store.current
        if batch is None or not len(batch):
            logger.info("No active batch to summarize")
            self.notifier.notify("No Active Batch", "There is no active batch to summarize")
            return None
        try:
            composite = await self.pipeline.composer.compose_batch(batch)
        except (DimensionMismatch, PersistenceFailure) as e:
            logger.error(f"Error creating batch summary for {batch.id}: {e}")
            self.notifier.notify("Summary Error", f"Failed to create summary for {batch.id}: {e}")
            return None
        if composite is not None:
            self.notifier.notify("Summary Created", f"Batch summary saved: {composite.high_res_path}")
        return composite

    async def analyze_current(self) -> Optional[PipelineReport]:
        """Run the whole pipeline on a snapshot of the open batch."""
        batch = self.store.current
        if batch is None or not len(batch):
            logger.info("No active batch to analyze")
            self.notifier.notify("No Active Batch", "There is no active batch to analyze")
            return None
        return await self.pipeline.process_batch(batch)

    def request_summary(self) -> asyncio.Task:
        """Schedule ``summarize_current`` in the background."""
        return self._spawn(self.summarize_current(), "summary-current", "Summarizing the current batch")

    def request_analysis(self) -> asyncio.Task:
        """Schedule ``analyze_current`` in the background."""
        return self._spawn(self.analyze_current(), "analysis-current", "Analyzing the current batch")

    # ─────────────────────────────── lifecycle
    @staticmethod
    async def _bounded(aw: Awaitable, timeout: Optional[float]):
        if timeout is None:
            return await aw
        return await asyncio.wait_for(aw, timeout=timeout)

    async def _periodic(self, name: str, interval: float, tick: Callable[[], Awaitable], immediate: bool) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + (0 if immediate else interval)
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            try:
                await tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Unhandled error in {name} tick")
            next_at += interval
            now = loop.time()
            if next_at <= now:
                # overran: drop the missed slots instead of firing them back to back
                skipped = int((now - next_at) // interval) + 1
                next_at += skipped * interval
                logger.warning(f"{name} tick overran its interval, skipped {skipped} tick(s)")

    def start(self) -> None:
        """Open the first batch and start both loops on the running event loop."""
        if self.running:
            return
        self.store.ensure_open()
        self.state = SchedulerState.CAPTURING
        self._loops = [
            asyncio.create_task(
                self._periodic("capture", self.capture_interval, self.capture_tick, immediate=True),
                name="capture-loop",
            ),
            asyncio.create_task(
                self._periodic("rotation", self.batch_interval, self.rotate_tick, immediate=False),
                name="rotation-loop",
            ),
        ]
        self.notifier.notify(
            "recap Started",
            f"Screenshot service running. Interval: {self.capture_interval:g}s, Batch: {self.batch_interval:g}s",
        )

    async def wait_for_pipelines(self) -> None:
        """Wait until every in-flight pipeline run has finished."""
        while self._pipelines:
            await asyncio.gather(*list(self._pipelines), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel the loops and abandon in-flight pipeline runs."""
        tasks = self._loops + list(self._pipelines)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loops = []
        self._pipelines.clear()

    async def run_forever(self) -> None:
        self.start()
        try:
            await asyncio.gather(*self._loops)
        finally:
            await self.stop()
