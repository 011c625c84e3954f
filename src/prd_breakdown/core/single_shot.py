"""Single-shot generation: the whole hierarchy from one call."""

from __future__ import annotations

from typing import Optional

from ..llm.base import GenerationCapability
from ..models.hierarchy import ParseConfig, ParseResponse
from ..models.validation import validate_hierarchy
from ..utils.logger import get_logger, log_operation
from .json_extract import parse_model
from .prompts import SYSTEM_PROMPT, build_user_prompt

logger = get_logger(__name__)


class SingleShotGenerator:
    """Asks for the entire hierarchy at once; suited to small documents."""

    def __init__(self, capability: GenerationCapability, config: Optional[ParseConfig] = None):
        self.capability = capability
        self.config = config or ParseConfig()

    async def generate(self, document: str) -> ParseResponse:
        """
        Generate and validate a hierarchy in one capability call.

        Args:
            document: Raw PRD text

        Returns:
            Validated hierarchy with fresh metadata

        Raises:
            CapabilityError: if the capability call fails
            ParseError: if the response holds no usable JSON
            StructuralError: if the hierarchy violates an invariant
        """
        with log_operation(logger, "Single-shot generation", self.capability.describe()):
            raw = await self.capability.generate(SYSTEM_PROMPT, build_user_prompt(document, self.config))
            response = parse_model(raw, ParseResponse, "response", self.config.validation_context())
            response.refresh_metadata()
            validate_hierarchy(response)

        logger.info(
            f"Generated {response.metadata.total_epics} epics, "
            f"{response.metadata.total_tasks} tasks, "
            f"{response.metadata.total_subtasks} subtasks"
        )
        return response
