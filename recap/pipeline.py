"""
Batch pipeline: composition -> analysis -> image generation -> delivery.

Each stage runs only if the one before it produced usable output. Failures
are contained at the stage that raised them and reported through the
notifier; nothing here raises to the scheduler for an expected failure.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Optional, TypeVar, Union

from .batch_store import Batch
from .errors import (
    AnalysisFailed,
    DimensionMismatch,
    GenerationFailed,
    PersistenceFailure,
)
from .grid_composer import Composite, GridComposer
from .notifier import Notifier
from .prompts.analysis import ANALYSIS_PROMPT, IMAGE_PROMPT, build_image_prompt
from .schemas import AnalysisResult, GeneratedImage
from .storage import BatchStorage, analysis_path, generated_image_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

VALID_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


@dataclass
class PipelineReport:
    """What one pipeline run produced."""
    source_id: str
    capture_count: int = 0
    composite: Optional[Composite] = None
    analysis: Optional[AnalysisResult] = None
    analysis_path: Optional[Path] = None
    generated: Optional[GeneratedImage] = None
    image_path: Optional[Path] = None
    delivered: bool = False
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        """Analysis text and generated image are both on disk."""
        return self.analysis_path is not None and self.image_path is not None


class BatchPipeline:
    """
    Sequences the downstream stages for a finalized batch or a single image.

    Args:
        composer: Grid composer, with storage attached for its outputs.
        vision: Object with ``async analyze(prompt_text, image_bytes) -> str``.
        images: Object with ``async generate_image(prompt_text) -> bytes``.
        webhook: Object with ``async deliver(text, image_bytes) -> bool``.
        storage: Where analysis text and generated images are written.
        notifier: Receives every milestone and failure.
        stage_timeout: Upper bound in seconds for each external call.
    """

    def __init__(
        self,
        composer: GridComposer,
        vision,
        images,
        webhook,
        storage: BatchStorage,
        notifier: Optional[Notifier] = None,
        analysis_prompt: str = ANALYSIS_PROMPT,
        image_prompt: str = IMAGE_PROMPT,
        stage_timeout: Optional[float] = 120.0,
    ):
        self.composer = composer
        self.vision = vision
        self.images = images
        self.webhook = webhook
        self.storage = storage
        self.notifier = notifier or Notifier(enabled=False)
        self.analysis_prompt = analysis_prompt
        self.image_prompt = image_prompt
        self.stage_timeout = stage_timeout

    async def _call(self, aw: Awaitable[T]) -> T:
        if self.stage_timeout is None:
            return await aw
        return await asyncio.wait_for(aw, timeout=self.stage_timeout)

    # ─────────────────────────────── entry points
    async def process_batch(self, batch: Batch) -> PipelineReport:
        """Compose ``batch`` and run the downstream stages on the result."""
        report = PipelineReport(source_id=batch.id, capture_count=len(batch))
        if not len(batch):
            logger.info(f"Batch {batch.id} is empty, nothing to summarize")
            return report

        self.notifier.notify("Batch Complete", f"Completing batch: {batch.id}. Creating summary...")
        try:
            composite = await self.composer.compose_batch(batch)
        except (DimensionMismatch, PersistenceFailure) as e:
            report.error = str(e)
            logger.error(f"Error creating batch summary for {batch.id}: {e}")
            self.notifier.notify("Summary Error", f"Failed to create summary for {batch.id}: {e}")
            return report

        if composite is None:
            return report
        report.composite = composite
        self.notifier.notify("Summary Created", "Batch summary grid created. Starting analysis...")

        await self._analyze_and_deliver(
            report,
            composite.compressed_bytes,
            self.storage.batch_dir(batch.id),
            composite.base_name,
        )
        return report

    async def process_image_file(self, image_path: Union[str, Path]) -> PipelineReport:
        """Run analysis, image generation and delivery on an existing image.

        Outputs are written next to the image.

        Raises:
            FileNotFoundError: if the image does not exist.
            ValueError: if the extension is not a supported image type.
            PersistenceFailure: if the image cannot be read.
        """
        path = Path(image_path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Image file not found at: {path}")
        if path.suffix.lower() not in VALID_IMAGE_EXTENSIONS:
            raise ValueError(f"Not a valid image file: {path}")

        logger.info(f"Analyzing image: {path}")
        self.notifier.notify("Analysis", f"Analyzing image: {path.name}")
        try:
            image_bytes = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise PersistenceFailure(f"cannot read {path}: {e}") from e

        report = PipelineReport(source_id=path.stem, capture_count=1)
        await self._analyze_and_deliver(report, image_bytes, path.parent, path.stem)
        return report

    # ─────────────────────────────── stages
    async def _analyze_and_deliver(
        self,
        report: PipelineReport,
        image_bytes: bytes,
        output_dir: Path,
        base_name: str,
    ) -> None:
        # analysis
        self.notifier.notify("Analysis Started", "Analyzing summary with the vision model...")
        try:
            text = await self._call(self.vision.analyze(self.analysis_prompt, image_bytes))
        except (AnalysisFailed, asyncio.TimeoutError) as e:
            report.error = f"analysis failed: {e}"
            logger.error(f"Error analyzing image: {e}")
            self.notifier.notify("Analysis Error", f"Failed to analyze summary: {e}")
            return

        report.analysis = AnalysisResult(source_id=report.source_id, text=text or "")
        try:
            report.analysis_path = await self.storage.write_text(
                analysis_path(output_dir, base_name), report.analysis.text
            )
        except PersistenceFailure as e:
            report.error = str(e)
            logger.error(f"Error saving analysis: {e}")
            self.notifier.notify("Analysis Error", f"Failed to save analysis: {e}")
            return
        logger.info(f"Analysis saved to: {report.analysis_path}")

        if report.analysis.is_empty:
            logger.warning(f"Analysis for {report.source_id} is empty, skipping image generation")
            self.notifier.notify("Analysis Empty", "The model returned no text; skipping image generation.")
            return
        self.notifier.notify("Analysis Complete", "A LinkedIn post was generated from your screenshots!")

        # image generation
        prompt = build_image_prompt(self.image_prompt, report.analysis.text)
        self.notifier.notify("Image Generation Started", "Creating LinkedIn header image...")
        try:
            image = await self._call(self.images.generate_image(prompt))
        except (GenerationFailed, asyncio.TimeoutError) as e:
            report.error = f"image generation failed: {e}"
            logger.error(f"Error generating LinkedIn image: {e}")
            self.notifier.notify("Image Generation Error", f"Failed to create LinkedIn header image: {e}")
            return

        report.generated = GeneratedImage(source_id=report.source_id, prompt=prompt, image_bytes=image)
        try:
            report.image_path = await self.storage.write_bytes(generated_image_path(output_dir, base_name), image)
        except PersistenceFailure as e:
            report.error = str(e)
            logger.error(f"Error saving generated image: {e}")
            self.notifier.notify("Image Generation Error", f"Failed to save image: {e}")
            return
        logger.info(f"LinkedIn image saved to: {report.image_path}")

        # delivery
        try:
            report.delivered = bool(await self._call(self.webhook.deliver(report.analysis.text, image)))
        except asyncio.TimeoutError:
            logger.error(f"Webhook delivery timed out after {self.stage_timeout}s")
            report.delivered = False

        if report.delivered:
            message = "LinkedIn content sent to webhook successfully!"
        else:
            self.notifier.notify("Webhook Error", "Content could not be sent to the webhook.")
            message = "LinkedIn post and header image created successfully!"
        self.notifier.notify("Process Complete", message, timeout=10)
