"""Advisory gap validation: reports missing practical steps, never edits the tree."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..llm.base import GenerationCapability
from ..models.hierarchy import ParseResponse, StrList
from ..utils.logger import get_logger, log_operation
from .exceptions import AdvisoryError, CapabilityError, ParseError, StructuralError
from .json_extract import parse_model
from .review_prompts import GAP_VALIDATION_SYSTEM_PROMPT, build_gap_validation_prompt

logger = get_logger(__name__)


class GapReport(BaseModel):
    """Gaps block implementation; warnings are merely suboptimal."""
    is_valid: bool = True
    gaps: StrList = Field(default_factory=list)
    warnings: StrList = Field(default_factory=list)

    def render(self) -> str:
        """Human-readable summary for the operator."""
        if self.is_valid and not self.gaps and not self.warnings:
            return "No gaps found"
        lines = []
        if self.gaps:
            lines.append("Gaps:")
            lines.extend(f"  - {gap}" for gap in self.gaps)
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)
        return "\n".join(lines)


class GapValidator:
    """Asks a generator to list setup, build and verification gaps in a plan."""

    def __init__(self, capability: GenerationCapability):
        self.capability = capability

    async def validate(self, tree: ParseResponse, document: str) -> GapReport:
        """
        Check a plan for gaps.

        Raises:
            AdvisoryError: on any failure; callers log it and carry on
        """
        with log_operation(logger, "Gap validation"):
            try:
                raw = await self.capability.generate(
                    GAP_VALIDATION_SYSTEM_PROMPT,
                    build_gap_validation_prompt(tree, document),
                )
                report = parse_model(raw, GapReport, "validation")
            except (CapabilityError, ParseError, StructuralError) as e:
                raise AdvisoryError(f"gap validation failed: {e}") from e

        if report.gaps:
            logger.warning(f"Gap validation found {len(report.gaps)} gaps")
        return report
