"""
Exception hierarchy for recap.

Every failure the pipeline can hit maps onto one of these types so that the
scheduler can contain it at the stage that produced it.
"""


class RecapError(Exception):
    """Base class for all recap errors."""


class CaptureUnavailable(RecapError):
    """No display source could be captured."""


class NoOpenBatch(RecapError):
    """An append was attempted while no batch is open."""


class NothingToFinalize(RecapError):
    """Finalize was called before any batch was opened."""


class DimensionMismatch(RecapError):
    """Captures in one batch do not share the same pixel size."""

    def __init__(self, expected: tuple[int, int], actual: tuple[int, int], index: int):
        self.expected = expected
        self.actual = actual
        self.index = index
        super().__init__(
            f"capture {index} is {actual[0]}x{actual[1]}, expected {expected[0]}x{expected[1]}"
        )


class PersistenceFailure(RecapError):
    """Writing an artifact to disk failed."""


class AnalysisFailed(RecapError):
    """The vision model call failed or returned nothing usable."""


class GenerationFailed(RecapError):
    """The image generation call failed."""


class ConfigError(RecapError):
    """Configuration could not be loaded or validated."""


class InstanceLocked(RecapError):
    """Another recap process already holds the instance lock."""
