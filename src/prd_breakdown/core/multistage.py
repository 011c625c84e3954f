"""Multi-stage hierarchy generation.

Three strictly sequential stages:

1. Epics: one call over the whole document.
2. Tasks: one call per epic, fanned out under a semaphore.
3. Subtasks: one call per task across all epics, fanned out under a wider
   semaphore, with per-item retry.

Workers write into result slots pre-sized to their input and keyed by
position, so reassembly order never depends on completion order. A stage
fails as a whole if any unit fails.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Union

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..llm.base import GenerationCapability
from ..models.hierarchy import (
    Epic,
    EpicsResponse,
    ParseConfig,
    ParseResponse,
    ProjectContext,
    Subtask,
    SubtasksResponse,
    Task,
    TasksResponse,
)
from ..models.validation import validate_hierarchy
from ..utils.logger import get_logger, log_operation
from .exceptions import CapabilityError, ParseError, StageError, StructuralError
from .json_extract import parse_model
from .stage_prompts import (
    STAGE1_SYSTEM_PROMPT,
    STAGE2_SYSTEM_PROMPT,
    STAGE3_SYSTEM_PROMPT,
    build_stage1_prompt,
    build_stage2_prompt,
    build_stage3_prompt,
    context_to_text,
)

logger = get_logger(__name__)

TASK_CONCURRENCY = 3
SUBTASK_CONCURRENCY = 5
SUBTASK_MAX_RETRIES = 2

# Failures a unit of work records against its slot
UNIT_ERRORS = (CapabilityError, ParseError, StructuralError)

EpicReviewHook = Callable[[list[Epic], ProjectContext], Union[list[Epic], Awaitable[list[Epic]]]]
ProgressCallback = Callable[[str], None]


@dataclass
class SubtaskWorkItem:
    """One task flattened out of the hierarchy for stage 3."""

    epic_index: int
    task_index: int
    task: Task
    epic_context: str


async def run_workers(coros: Sequence[Awaitable[None]]) -> None:
    """
    Await every worker; if any raises, cancel the rest before re-raising.

    Workers record expected unit failures in their slots, so an exception
    escaping here is unexpected and no worker may outlive it.
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def normalize_ids(items: Sequence[Union[Epic, Task, Subtask]], parent_id: Optional[str] = None) -> None:
    """
    Make sibling temp ids unique and rooted under their parent.

    A sibling whose id is empty, repeated, or not prefixed by the parent id
    gets ``<parent>.<position>`` (``<position>`` for top-level items). Renamed
    unique ids are rewritten in the siblings' depends_on lists.
    """
    prefix = f"{parent_id}." if parent_id else ""
    taken = {item.temp_id for item in items if item.temp_id and item.temp_id.startswith(prefix)}
    seen: set[str] = set()
    renamed: dict[str, str] = {}

    for position, item in enumerate(items, start=1):
        current = item.temp_id
        if current and current.startswith(prefix) and current not in seen:
            seen.add(current)
            continue

        candidate = f"{prefix}{position}"
        bump = position
        while candidate in seen or (candidate in taken and candidate != current):
            bump += 1
            candidate = f"{prefix}{bump}"

        if current and current not in seen:
            renamed[current] = candidate
        item.temp_id = candidate
        seen.add(candidate)

    if renamed:
        for item in items:
            item.depends_on = [renamed.get(dep, dep) for dep in item.depends_on]


class MultiStageGenerator:
    """Generates a hierarchy in three stages with bounded parallel fan-out."""

    def __init__(
        self,
        capability: GenerationCapability,
        config: Optional[ParseConfig] = None,
        task_capability: Optional[GenerationCapability] = None,
        subtask_capability: Optional[GenerationCapability] = None,
        epic_review_hook: Optional[EpicReviewHook] = None,
        progress_callback: Optional[ProgressCallback] = None,
        task_concurrency: int = TASK_CONCURRENCY,
        subtask_concurrency: int = SUBTASK_CONCURRENCY,
        subtask_retries: int = SUBTASK_MAX_RETRIES,
    ):
        """
        Initialize the generator.

        Args:
            capability: Generator for stage 1, and for stages 2 and 3 unless overridden
            config: Generation targets
            task_capability: Optional generator for stage 2
            subtask_capability: Optional generator for stage 3
            epic_review_hook: Called with the stage 1 epics before stage 2; may edit them
            progress_callback: Receives informational progress messages
            task_concurrency: Max concurrent stage 2 calls
            subtask_concurrency: Max concurrent stage 3 calls
            subtask_retries: Extra attempts per stage 3 work item
        """
        self.capability = capability
        self.config = config or ParseConfig()
        self.task_capability = task_capability or capability
        self.subtask_capability = subtask_capability or capability
        self.epic_review_hook = epic_review_hook
        self.progress_callback = progress_callback
        self.task_concurrency = task_concurrency
        self.subtask_concurrency = subtask_concurrency
        self.subtask_retries = subtask_retries

    def _notify(self, message: str) -> None:
        logger.info(message)
        if self.progress_callback:
            self.progress_callback(message)

    async def generate(self, document: str) -> ParseResponse:
        """
        Run all three stages and assemble the validated hierarchy.

        Args:
            document: Raw PRD text

        Returns:
            Fully populated, validated hierarchy

        Raises:
            StageError: naming the failing stage and unit of work
            StructuralError: if the assembled tree fails validation
        """
        with log_operation(logger, "Multi-stage generation"):
            stage1 = await self.generate_epics(document)
            epics = await self._review_epics(stage1.epics, stage1.project)
            epics = await self.generate_tasks_for_epics(epics, stage1.project, document)
            epics = await self.generate_subtasks_for_tasks(epics, stage1.project, document)

            response = ParseResponse(project=stage1.project, epics=epics).refresh_metadata()
            validate_hierarchy(response)

        self._notify(
            f"Generated {response.metadata.total_epics} epics, "
            f"{response.metadata.total_tasks} tasks, "
            f"{response.metadata.total_subtasks} subtasks"
        )
        return response

    # =========================================================================
    # Stage 1: Epics
    # =========================================================================

    async def generate_epics(self, document: str) -> EpicsResponse:
        """Extract project context and epic summaries from the document."""
        self._notify("Stage 1: generating epics")
        with log_operation(logger, "Stage 1: epics"):
            try:
                raw = await self.capability.generate(
                    STAGE1_SYSTEM_PROMPT, build_stage1_prompt(document, self.config)
                )
                stage1 = parse_model(raw, EpicsResponse, "epics_response")
            except UNIT_ERRORS as e:
                raise StageError("epics", e) from e

            if not stage1.epics:
                raise StageError("epics", StructuralError("epics", "Stage 1 returned no epics"))

            # Tasks come from stage 2 only
            for epic in stage1.epics:
                epic.tasks = []
            normalize_ids(stage1.epics)

        self._notify(f"Stage 1 complete: {len(stage1.epics)} epics")
        return stage1

    async def _review_epics(self, epics: list[Epic], project: ProjectContext) -> list[Epic]:
        if self.epic_review_hook is None:
            return epics

        reviewed = self.epic_review_hook(epics, project)
        if inspect.isawaitable(reviewed):
            reviewed = await reviewed
        if not reviewed:
            logger.info("Epic review returned nothing; keeping generated epics")
            return epics

        for epic in reviewed:
            epic.tasks = []
        normalize_ids(reviewed)
        logger.info(f"Epic review kept {len(reviewed)} epics")
        return list(reviewed)

    # =========================================================================
    # Stage 2: Tasks
    # =========================================================================

    async def _generate_tasks(
        self,
        epic: Epic,
        project: ProjectContext,
        document: Optional[str],
    ) -> list[Task]:
        raw = await self.task_capability.generate(
            STAGE2_SYSTEM_PROMPT,
            build_stage2_prompt(epic, project, self.config, document),
        )
        tasks = parse_model(raw, TasksResponse, "tasks_response", self.config.validation_context()).tasks
        if not tasks:
            raise StructuralError("tasks", f"epic '{epic.title}' has empty tasks array")

        # Subtasks come from stage 3 only
        for task in tasks:
            task.subtasks = []
        normalize_ids(tasks, epic.temp_id)
        return tasks

    async def generate_tasks_for_epics(
        self,
        epics: list[Epic],
        project: ProjectContext,
        document: Optional[str] = None,
    ) -> list[Epic]:
        """
        Generate tasks for every epic in parallel.

        Args:
            epics: Stage 1 epics, in order
            project: Project context for prompt framing
            document: Raw PRD text, sent only in full-context mode

        Returns:
            Copies of the epics, in the same order, with tasks attached

        Raises:
            StageError: for the first failed epic by position
        """
        results: list[Optional[list[Task]]] = [None] * len(epics)
        errors: list[Optional[Exception]] = [None] * len(epics)
        semaphore = asyncio.Semaphore(self.task_concurrency)
        completed = 0

        async def worker(index: int, epic: Epic) -> None:
            nonlocal completed
            async with semaphore:
                try:
                    results[index] = await self._generate_tasks(epic, project, document)
                except UNIT_ERRORS as e:
                    logger.warning(f"Tasks for epic {epic.temp_id} failed: {e}")
                    errors[index] = e
                    return
            completed += 1
            self._notify(
                f"  [{completed}/{len(epics)}] Epic {epic.temp_id}: {epic.title} "
                f"-> {len(results[index] or [])} tasks"
            )

        with log_operation(logger, "Stage 2: tasks", f"{len(epics)} epics"):
            await run_workers([worker(i, epic) for i, epic in enumerate(epics)])

            for index, error in enumerate(errors):
                if error is not None:
                    raise StageError("tasks", error, unit_id=epics[index].temp_id)

        return [epic.model_copy(update={"tasks": results[i]}) for i, epic in enumerate(epics)]

    # =========================================================================
    # Stage 3: Subtasks
    # =========================================================================

    async def _generate_subtasks(
        self,
        item: SubtaskWorkItem,
        project: ProjectContext,
        document: Optional[str],
    ) -> list[Subtask]:
        raw = await self.subtask_capability.generate(
            STAGE3_SYSTEM_PROMPT,
            build_stage3_prompt(item.task, item.epic_context, project, self.config, document),
        )
        subtasks = parse_model(raw, SubtasksResponse, "subtasks_response").subtasks
        if not subtasks:
            raise StructuralError("subtasks", f"task '{item.task.title}' has empty subtasks array")
        normalize_ids(subtasks, item.task.temp_id)
        return subtasks

    async def _generate_subtasks_with_retry(
        self,
        item: SubtaskWorkItem,
        project: ProjectContext,
        document: Optional[str],
    ) -> list[Subtask]:
        attempts = self.subtask_retries + 1

        def log_retry(state: RetryCallState) -> None:
            logger.warning(
                f"Subtasks for task {item.task.temp_id} failed "
                f"(attempt {state.attempt_number}/{attempts}), retrying: {state.outcome.exception()}"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            retry=retry_if_exception_type(UNIT_ERRORS),
            before_sleep=log_retry,
            reraise=True,
        )
        return await retrying(self._generate_subtasks, item, project, document)

    async def generate_subtasks_for_tasks(
        self,
        epics: list[Epic],
        project: ProjectContext,
        document: Optional[str] = None,
    ) -> list[Epic]:
        """
        Generate subtasks for every task across all epics in parallel.

        Args:
            epics: Epics with stage 2 tasks attached
            project: Project context for prompt framing
            document: Raw PRD text, sent only in full-context mode

        Returns:
            Copies of the epics with subtasks attached to every task

        Raises:
            StageError: for the first failed task by work-item order
        """
        items = [
            SubtaskWorkItem(
                epic_index=i,
                task_index=j,
                task=task,
                epic_context=context_to_text(epic.context),
            )
            for i, epic in enumerate(epics)
            for j, task in enumerate(epic.tasks)
        ]
        results: list[list[Optional[list[Subtask]]]] = [[None] * len(epic.tasks) for epic in epics]
        errors: list[Optional[Exception]] = [None] * len(items)
        semaphore = asyncio.Semaphore(self.subtask_concurrency)
        completed = 0

        async def worker(index: int, item: SubtaskWorkItem) -> None:
            nonlocal completed
            async with semaphore:
                try:
                    subtasks = await self._generate_subtasks_with_retry(item, project, document)
                except UNIT_ERRORS as e:
                    logger.warning(f"Subtasks for task {item.task.temp_id} failed: {e}")
                    errors[index] = e
                    return
            results[item.epic_index][item.task_index] = subtasks
            completed += 1
            self._notify(
                f"  [{completed}/{len(items)}] Task {item.task.temp_id}: {item.task.title} "
                f"-> {len(subtasks)} subtasks"
            )

        with log_operation(logger, "Stage 3: subtasks", f"{len(items)} tasks"):
            await run_workers([worker(k, item) for k, item in enumerate(items)])

            for index, error in enumerate(errors):
                if error is not None:
                    raise StageError("subtasks", error, unit_id=items[index].task.temp_id)

        assembled = []
        for i, epic in enumerate(epics):
            tasks = [
                task.model_copy(update={"subtasks": results[i][j]})
                for j, task in enumerate(epic.tasks)
            ]
            assembled.append(epic.model_copy(update={"tasks": tasks}))
        return assembled
