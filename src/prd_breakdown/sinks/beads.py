"""Beads issue tracker sink, driven through the ``bd`` CLI."""

from __future__ import annotations

import asyncio
import json
import re
import shlex
from pathlib import Path
from typing import Any, Optional, Union

from ..core.exceptions import SinkError
from ..models.hierarchy import Epic, ParseResponse, Priority, Subtask, Task, TestingRequirements
from ..utils.logger import get_logger
from .base import (
    CreatedItem,
    CreateResult,
    Dependency,
    DependencyType,
    FailedItem,
    ItemType,
    Sink,
    WorkItem,
)

logger = get_logger(__name__)

ISSUE_ID_PATTERN = re.compile(r"\b[\w-]+-[a-z0-9]{2,}\b")

PRIORITY_MAP = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
    Priority.VERY_LOW: 4,
}

# Context object keys rendered into issue descriptions
CONTEXT_LABELS = {
    "business_context": "Business Context",
    "target_users": "Target Users",
    "brand_voice": "Brand Voice",
    "success_metrics": "Success Metrics",
}

TESTING_LABELS = {
    "unit_tests": "Unit Tests",
    "integration_tests": "Integration Tests",
    "type_tests": "Type Tests",
    "e2e_tests": "E2E Tests",
}


def map_priority(priority: Priority) -> int:
    return PRIORITY_MAP.get(priority, 2)


class BeadsSink(Sink):
    """Creates epics, tasks and subtasks as beads issues with dependencies."""

    name = "beads"

    def __init__(
        self,
        working_dir: Union[str, Path] = ".",
        dry_run: bool = False,
        include_context: bool = True,
        include_testing: bool = True,
        timeout: int = 60,
    ):
        """Initialize beads sink.

        Args:
            working_dir: Directory holding the beads database.
            dry_run: Log bd commands instead of running them.
            include_context: Add context blocks to descriptions.
            include_testing: Add testing requirements to descriptions.
            timeout: Timeout for each bd command in seconds.
        """
        self.working_dir = Path(working_dir)
        self.dry_run = dry_run
        self.include_context = include_context
        self.include_testing = include_testing
        self.timeout = timeout

    async def _run_bd(self, *args: str) -> tuple[int, str, str]:
        """Run a bd command asynchronously.

        Returns:
            Tuple of (return_code, stdout, stderr).
        """
        cmd = ["bd", *args]
        logger.debug(f"Running: {shlex.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=self.working_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SinkError(f"failed to run bd: {e}", sink=self.name) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            raise SinkError(f"bd command timed out after {self.timeout}s: {shlex.join(cmd)}", sink=self.name) from e

        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace").strip(),
            stderr.decode("utf-8", errors="replace").strip(),
        )

    async def is_available(self) -> bool:
        if self.dry_run:
            return True
        try:
            returncode, _, _ = await self._run_bd("--version")
        except SinkError:
            return False
        return returncode == 0

    # =========================================================================
    # Descriptions
    # =========================================================================

    def _context_block(self, context: Any) -> str:
        if not self.include_context or not context:
            return ""
        if isinstance(context, str):
            return f"\n\n**Context:** {context}"
        if isinstance(context, dict):
            parts = [
                f"- **{label}:** {context[key]}"
                for key, label in CONTEXT_LABELS.items()
                if isinstance(context.get(key), str) and context[key]
            ]
            if parts:
                return "\n\n**Context:**\n" + "\n".join(parts)
        return ""

    def _testing_block(self, testing: TestingRequirements) -> str:
        if not self.include_testing:
            return ""
        parts = [
            f"- **{label}:** {getattr(testing, key)}"
            for key, label in TESTING_LABELS.items()
            if getattr(testing, key)
        ]
        if not parts:
            return ""
        return "\n\n**Testing Requirements:**\n" + "\n".join(parts)

    def build_description(self, item: Union[Epic, Task, Subtask]) -> str:
        return item.description + self._context_block(item.context) + self._testing_block(item.testing)

    # =========================================================================
    # Creation
    # =========================================================================

    @staticmethod
    def parse_issue_id(output: str) -> Optional[str]:
        """Pull the created issue id out of bd output (JSON or text)."""
        text = output.strip()
        if text.startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                data = None
            if isinstance(data, dict) and isinstance(data.get("id"), str):
                return data["id"]
        match = ISSUE_ID_PATTERN.search(text)
        return match.group(0) if match else None

    async def _create_issue(
        self,
        temp_id: str,
        title: str,
        description: str,
        issue_type: str,
        priority: int,
        parent_id: Optional[str] = None,
        acceptance: str = "",
        design: str = "",
        estimate_minutes: int = 0,
        labels: Optional[list[str]] = None,
    ) -> str:
        args = [
            "create", title,
            "--description", description,
            "--priority", str(priority),
            "--type", issue_type,
        ]
        if parent_id:
            args += ["--parent", parent_id]
        if acceptance:
            args += ["--acceptance", acceptance]
        if design:
            args += ["--design", design]
        if estimate_minutes > 0:
            args += ["--estimate", str(estimate_minutes)]
        if labels:
            args += ["--labels", ",".join(labels)]

        if self.dry_run:
            logger.info(f"[dry-run] bd {shlex.join(args)}")
            return f"dry-{temp_id}"

        returncode, stdout, stderr = await self._run_bd(*args)
        if returncode != 0:
            raise SinkError(f"bd create failed: {stderr or stdout}", sink=self.name)

        issue_id = self.parse_issue_id(stdout)
        if issue_id is None:
            raise SinkError(f"could not extract issue id from: {stdout}", sink=self.name)
        return issue_id

    async def _add_dependency(self, dependent_id: str, blocker_id: str) -> bool:
        if self.dry_run:
            logger.info(f"[dry-run] bd dep add {dependent_id} {blocker_id}")
            return True
        returncode, stdout, stderr = await self._run_bd("dep", "add", dependent_id, blocker_id)
        if returncode != 0:
            logger.warning(f"bd dep add {dependent_id} {blocker_id} failed: {stderr or stdout}")
            return False
        return True

    async def create_items(self, tree: ParseResponse) -> CreateResult:
        """
        Create every item, parents before children, then add blocking edges.

        Items whose creation fails are reported in ``failed``; their children
        are skipped.
        """
        result = CreateResult()
        temp_to_external: dict[str, str] = {}

        async def create(
            item_type: ItemType,
            item: Union[Epic, Task, Subtask],
            parent_temp_id: Optional[str],
            **options: Any,
        ) -> Optional[str]:
            parent_id = temp_to_external.get(parent_temp_id) if parent_temp_id else None
            try:
                issue_id = await self._create_issue(
                    temp_id=item.temp_id,
                    title=item.title,
                    description=self.build_description(item),
                    issue_type="epic" if item_type == ItemType.EPIC else "task",
                    parent_id=parent_id,
                    labels=item.labels,
                    **options,
                )
            except SinkError as e:
                logger.warning(f"Failed to create {item_type.value} {item.temp_id}: {e}")
                result.failed.append(FailedItem(
                    item=WorkItem(
                        type=item_type, temp_id=item.temp_id, title=item.title,
                        parent_temp_id=parent_temp_id,
                    ),
                    error=str(e),
                ))
                return None

            temp_to_external[item.temp_id] = issue_id
            result.record_created(CreatedItem(
                external_id=issue_id, temp_id=item.temp_id, type=item_type,
                title=item.title, parent_external_id=parent_id,
            ))
            return issue_id

        for epic in tree.epics:
            epic_id = await create(
                ItemType.EPIC, epic, None,
                priority=1,
                acceptance="\n".join(f"- {c}" for c in epic.acceptance_criteria),
                estimate_minutes=int((epic.estimated_days or 0) * 8 * 60),
            )
            if epic_id is None:
                continue

            for task in epic.tasks:
                task_id = await create(
                    ItemType.TASK, task, epic.temp_id,
                    priority=map_priority(task.priority),
                    design=task.design_notes or "",
                    estimate_minutes=int((task.estimated_hours or 0) * 60),
                )
                if task_id is None:
                    continue

                for subtask in task.subtasks:
                    await create(
                        ItemType.SUBTASK, subtask, task.temp_id,
                        priority=2,
                        estimate_minutes=subtask.estimated_minutes or 0,
                    )

        items: list[Union[Epic, Task, Subtask]] = []
        for epic in tree.epics:
            items.append(epic)
            for task in epic.tasks:
                items.append(task)
                items.extend(task.subtasks)

        for item in items:
            dependent_id = temp_to_external.get(item.temp_id)
            if dependent_id is None:
                continue
            for dep in item.depends_on:
                blocker_id = temp_to_external.get(dep)
                if blocker_id and await self._add_dependency(dependent_id, blocker_id):
                    result.record_dependency(Dependency(
                        from_id=blocker_id, to_id=dependent_id, type=DependencyType.BLOCKS,
                    ))

        logger.info(
            f"Created {result.stats.epics} epics, {result.stats.tasks} tasks, "
            f"{result.stats.subtasks} subtasks, {result.stats.dependencies} dependencies"
        )
        return result
