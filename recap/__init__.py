"""
recap: periodic screenshots, batched into timed windows and summarized as a
labelled grid that is analyzed by a vision model.
"""

__version__ = "0.1.0"

from .batch_store import Batch, BatchState, BatchStore, Capture
from .grid_composer import Composite, GridComposer, GridLayout
from .pipeline import BatchPipeline, PipelineReport
from .scheduler import BatchScheduler, SchedulerState

__all__ = [
    "Batch",
    "BatchState",
    "BatchStore",
    "Capture",
    "Composite",
    "GridComposer",
    "GridLayout",
    "BatchPipeline",
    "PipelineReport",
    "BatchScheduler",
    "SchedulerState",
]
