"""Structural review pass with merge-not-replace semantics.

The reviewer sees only a skeleton of the tree (ids, titles, dependency
edges) and returns a corrected skeleton. Its output never replaces the
tree: structure flows from the reviewed skeleton into the merged tree,
content flows from the original. A merge that fails validation is
discarded in favour of the untouched original.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..llm.base import GenerationCapability
from ..models.hierarchy import Epic, ParseResponse, ProjectContext, Task
from ..models.validation import validate_hierarchy
from ..utils.logger import get_logger, log_operation
from .exceptions import (
    CapabilityError,
    MergeValidationError,
    ParseError,
    ReviewError,
    StructuralError,
)
from .json_extract import parse_model
from .review_prompts import REVIEW_SYSTEM_PROMPT, build_review_prompt

logger = get_logger(__name__)

NO_CHANGES = "No changes needed"


class ReviewedEpic(Epic):
    """Epic as returned by the reviewer.

    ``tasks`` is None when the reviewer left the epic's task list alone; an
    explicit list, even an empty one, is the new task structure.
    """
    tasks: Optional[list[Task]] = None  # type: ignore[assignment]

    # Replaces Epic's null-to-empty coercion so a missing task list stays None
    @field_validator("tasks", mode="before")
    @classmethod
    def _null_tasks(cls, value: Any) -> Any:
        return value


class ReviewResponse(BaseModel):
    """Reviewer output: notes plus a corrected skeleton."""
    review_notes: str = ""
    project: Optional[ProjectContext] = None
    epics: list[ReviewedEpic] = Field(default_factory=list)


@dataclass
class ReviewResult:
    """Outcome of a review pass."""

    response: ParseResponse
    was_modified: bool
    review_notes: str


def _overlay_structure(base: Any, reviewed: Any) -> None:
    """Apply the reviewer's title and dependency edits onto a copied item."""
    if "depends_on" in reviewed.model_fields_set:
        base.depends_on = list(reviewed.depends_on)
    if reviewed.title.strip():
        base.title = reviewed.title


def _merge_project(original: ProjectContext, reviewed: Optional[ProjectContext]) -> ProjectContext:
    project = original.model_copy(deep=True)
    if reviewed is None or not reviewed.product_name.strip():
        return project
    for name in reviewed.model_fields_set:
        value = getattr(reviewed, name)
        if value:
            setattr(project, name, value)
    return project


def merge_reviewed_structure(original: ParseResponse, reviewed: ReviewResponse) -> ParseResponse:
    """
    Merge a reviewed skeleton onto the original tree.

    Epics and tasks whose temp id exists in the original start from a deep
    copy of the original and take only the reviewer's title and dependency
    changes. Unknown ids are accepted from the reviewer as-is. The original
    tree is never mutated.

    Args:
        original: Fully populated tree
        reviewed: Reviewer output

    Returns:
        Merged tree with recomputed metadata (not yet validated)
    """
    epics_by_id = {epic.temp_id: epic for epic in original.epics if epic.temp_id}
    tasks_by_id = {task.temp_id: task for _, task in original.iter_tasks() if task.temp_id}

    def merge_task(reviewed_task: Task) -> Task:
        source = tasks_by_id.get(reviewed_task.temp_id)
        if source is None:
            return reviewed_task.model_copy(deep=True)
        task = source.model_copy(deep=True)
        _overlay_structure(task, reviewed_task)
        return task

    merged_epics: list[Epic] = []
    for reviewed_epic in reviewed.epics:
        source = epics_by_id.get(reviewed_epic.temp_id)
        if source is not None:
            epic = source.model_copy(deep=True)
            _overlay_structure(epic, reviewed_epic)
        else:
            epic = Epic.model_validate(reviewed_epic.model_dump(exclude={"tasks"}))

        if reviewed_epic.tasks is not None:
            epic.tasks = [merge_task(task) for task in reviewed_epic.tasks]

        merged_epics.append(epic)

    merged = ParseResponse(
        project=_merge_project(original.project, reviewed.project),
        epics=merged_epics,
    )
    return merged.refresh_metadata()


def validate_merge(merged: ParseResponse) -> None:
    """Validate a merged tree, raising MergeValidationError on failure."""
    try:
        validate_hierarchy(merged)
    except StructuralError as e:
        raise MergeValidationError(e) from e


def was_modified(notes: str) -> bool:
    notes = notes.strip()
    return bool(notes) and notes != NO_CHANGES


class StructuralReviewer:
    """Asks a generator to repair cross-cutting structure, then merges its answer."""

    def __init__(self, capability: GenerationCapability):
        self.capability = capability

    def apply(self, tree: ParseResponse, reviewed: ReviewResponse) -> ReviewResult:
        """Merge reviewer output onto a tree, falling back to the tree on validation failure."""
        notes = reviewed.review_notes.strip()
        merged = merge_reviewed_structure(tree, reviewed)
        try:
            validate_merge(merged)
        except MergeValidationError as e:
            logger.warning(f"Review merge failed validation, keeping original structure: {e}")
            return ReviewResult(
                response=tree,
                was_modified=False,
                review_notes=f"Review merge failed validation: {e}. Using original structure.",
            )

        return ReviewResult(response=merged, was_modified=was_modified(notes), review_notes=notes or NO_CHANGES)

    async def review_and_fix(self, tree: ParseResponse, document: str) -> ReviewResult:
        """
        Review a tree and merge the reviewer's structural fixes.

        Args:
            tree: Validated hierarchy
            document: Raw PRD text

        Returns:
            ReviewResult with the merged tree, or the original tree if the merge was unusable

        Raises:
            ReviewError: if the review call fails or returns no usable JSON
        """
        with log_operation(logger, "Structural review"):
            try:
                raw = await self.capability.generate(REVIEW_SYSTEM_PROMPT, build_review_prompt(tree))
                reviewed = parse_model(raw, ReviewResponse, "review")
            except (CapabilityError, ParseError, StructuralError) as e:
                raise ReviewError(f"structural review failed: {e}", details=e.details) from e

            result = self.apply(tree, reviewed)

        logger.info(f"Review notes: {result.review_notes}")
        return result
