"""Decomposition pipeline: strategy choice, post-passes and sink hand-off."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..llm.base import GenerationCapability
from ..models.hierarchy import ParseConfig, ParseResponse
from ..models.validation import validate_hierarchy
from ..sinks.base import CreateResult, Sink
from ..utils.logger import get_logger
from .checkpoint import save_checkpoint
from .exceptions import AdvisoryError, CheckpointError, ConfigurationError, ReviewError, SinkError
from .gap_validator import GapReport, GapValidator
from .multistage import EpicReviewHook, MultiStageGenerator, ProgressCallback
from .reviewer import ReviewResult, StructuralReviewer
from .single_shot import SingleShotGenerator

logger = get_logger(__name__)

DEFAULT_SMART_THRESHOLD = 300


class Strategy(str, Enum):
    """How the hierarchy is generated."""
    AUTO = "auto"
    SINGLE_SHOT = "single-shot"
    MULTI_STAGE = "multi-stage"


@dataclass
class PipelineResult:
    """A validated hierarchy and what the post-passes said about it."""

    response: ParseResponse
    strategy: Optional[Strategy] = None
    review: Optional[ReviewResult] = None
    gap_report: Optional[GapReport] = None


def count_lines(document: str) -> int:
    return len(document.splitlines())


class DecompositionPipeline:
    """Turns a PRD into a validated hierarchy and hands it to a sink."""

    def __init__(
        self,
        capability: Optional[GenerationCapability],
        config: Optional[ParseConfig] = None,
        strategy: Strategy = Strategy.AUTO,
        smart_threshold: int = DEFAULT_SMART_THRESHOLD,
        review: bool = False,
        validate_gaps: bool = False,
        epic_capability: Optional[GenerationCapability] = None,
        task_capability: Optional[GenerationCapability] = None,
        subtask_capability: Optional[GenerationCapability] = None,
        review_capability: Optional[GenerationCapability] = None,
        epic_review_hook: Optional[EpicReviewHook] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            capability: Default generator; may be None when only delivering a loaded tree
            config: Generation targets
            strategy: Forced strategy, or AUTO to decide by document size
            smart_threshold: Line count above which AUTO picks multi-stage; 0 always picks single-shot
            review: Run the structural review pass
            validate_gaps: Run the advisory gap validation pass
            epic_capability: Optional generator for stage 1
            task_capability: Optional generator for stage 2
            subtask_capability: Optional generator for stage 3
            review_capability: Optional generator for review and gap passes
            epic_review_hook: Interactive hook run after stage 1
            progress_callback: Receives informational progress messages
        """
        self.capability = capability
        self.config = config or ParseConfig()
        self.strategy = strategy
        self.smart_threshold = smart_threshold
        self.review = review
        self.validate_gaps = validate_gaps
        self.epic_capability = epic_capability
        self.task_capability = task_capability
        self.subtask_capability = subtask_capability
        self.review_capability = review_capability or capability
        self.epic_review_hook = epic_review_hook
        self.progress_callback = progress_callback

    def choose_strategy(self, document: str) -> Strategy:
        """Pick single-shot or multi-stage for a document."""
        if self.strategy != Strategy.AUTO:
            return self.strategy
        if self.smart_threshold <= 0:
            return Strategy.SINGLE_SHOT
        lines = count_lines(document)
        if lines > self.smart_threshold:
            logger.info(f"Document has {lines} lines (> {self.smart_threshold}); using multi-stage generation")
            return Strategy.MULTI_STAGE
        logger.info(f"Document has {lines} lines; using single-shot generation")
        return Strategy.SINGLE_SHOT

    def _require(self, capability: Optional[GenerationCapability], purpose: str) -> GenerationCapability:
        if capability is None:
            raise ConfigurationError(f"a generator is required for {purpose}")
        return capability

    async def generate(self, document: str, strategy: Optional[Strategy] = None) -> ParseResponse:
        """Generate a validated hierarchy with the chosen strategy."""
        capability = self._require(self.capability, "generation")
        strategy = strategy or self.choose_strategy(document)
        if strategy == Strategy.MULTI_STAGE:
            generator = MultiStageGenerator(
                self.epic_capability or capability,
                self.config,
                task_capability=self.task_capability or capability,
                subtask_capability=self.subtask_capability or capability,
                epic_review_hook=self.epic_review_hook,
                progress_callback=self.progress_callback,
            )
            return await generator.generate(document)
        return await SingleShotGenerator(capability, self.config).generate(document)

    async def run(self, document: str) -> PipelineResult:
        """
        Generate, then run the optional post-passes.

        Args:
            document: Raw PRD text

        Returns:
            PipelineResult holding the validated hierarchy
        """
        strategy = self.choose_strategy(document)
        response = await self.generate(document, strategy)
        result = await self.finalize(response, document)
        result.strategy = strategy
        return result

    async def finalize(self, response: ParseResponse, document: str = "") -> PipelineResult:
        """
        Validate a hierarchy and run the optional review and gap passes.

        Accepts trees from any source, including a loaded checkpoint.

        Raises:
            StructuralError: if the hierarchy is invalid
        """
        response.refresh_metadata()
        validate_hierarchy(response)
        result = PipelineResult(response=response)

        if self.review:
            reviewer = StructuralReviewer(self._require(self.review_capability, "review"))
            try:
                review = await reviewer.review_and_fix(response, document)
            except ReviewError as e:
                logger.warning(f"Structural review skipped: {e}")
            else:
                result.review = review
                result.response = review.response

        if self.validate_gaps:
            validator = GapValidator(self._require(self.review_capability, "gap validation"))
            try:
                result.gap_report = await validator.validate(result.response, document)
            except AdvisoryError as e:
                logger.warning(f"Gap validation skipped: {e}")

        return result

    async def deliver(
        self,
        response: ParseResponse,
        sink: Sink,
        checkpoint_path: Optional[Union[str, Path]] = None,
    ) -> CreateResult:
        """
        Hand a validated hierarchy to a sink.

        On sink failure the hierarchy is saved as a checkpoint so generation
        need not be repeated.

        Raises:
            StructuralError: if the hierarchy is invalid
            SinkError: carrying the checkpoint path when one was written
        """
        validate_hierarchy(response)
        try:
            if not await sink.is_available():
                raise SinkError(f"output sink '{sink.name}' is not available", sink=sink.name)
            return await sink.create_items(response)
        except (SinkError, OSError) as e:
            logger.error(f"Sink '{sink.name}' failed: {e}")
            try:
                saved = save_checkpoint(response, checkpoint_path)
            except CheckpointError as checkpoint_error:
                logger.error(f"Could not save checkpoint: {checkpoint_error}")
                raise SinkError(str(e), sink=sink.name) from e
            raise SinkError(str(e), sink=sink.name, checkpoint_path=str(saved)) from e
