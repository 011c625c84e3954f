"""JSON file (or stdout) sink."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, TextIO, Union

from ..core.exceptions import SinkError
from ..models.hierarchy import ParseResponse
from ..utils.logger import get_logger
from .base import CreatedItem, CreateResult, Dependency, DependencyType, ItemType, Sink

logger = get_logger(__name__)


class JSONSink(Sink):
    """Writes the hierarchy as JSON and reports every item as created."""

    name = "json"

    def __init__(
        self,
        output_path: Optional[Union[str, Path]] = None,
        dry_run: bool = False,
        stream: Optional[TextIO] = None,
    ):
        """Initialize JSON sink.

        Args:
            output_path: File to write; stdout when omitted.
            dry_run: Log what would be written instead of writing a file.
            stream: Stream used instead of stdout.
        """
        self.output_path = Path(output_path) if output_path else None
        self.dry_run = dry_run
        self.stream = stream

    async def is_available(self) -> bool:
        return True

    def _write(self, payload: str) -> None:
        if self.dry_run:
            logger.info(f"[dry-run] Would write {len(payload)} bytes to {self.output_path or 'stdout'}")
            return
        if self.output_path is None:
            stream = self.stream or sys.stdout
            stream.write(payload + "\n")
            return
        try:
            self.output_path.write_text(payload + "\n", encoding="utf-8")
        except OSError as e:
            raise SinkError(f"failed to write {self.output_path}: {e}", sink=self.name) from e
        logger.info(f"Tasks written to {self.output_path}")

    async def create_items(self, tree: ParseResponse) -> CreateResult:
        self._write(tree.model_dump_json(indent=2))

        result = CreateResult()
        for epic in tree.epics:
            epic_id = f"epic-{epic.temp_id}"
            result.record_created(CreatedItem(
                external_id=epic_id, temp_id=epic.temp_id, type=ItemType.EPIC, title=epic.title,
            ))
            for dep in epic.depends_on:
                result.record_dependency(Dependency(
                    from_id=f"epic-{dep}", to_id=epic_id, type=DependencyType.BLOCKS,
                ))

            for task in epic.tasks:
                task_id = f"task-{task.temp_id}"
                result.record_created(CreatedItem(
                    external_id=task_id, temp_id=task.temp_id, type=ItemType.TASK,
                    title=task.title, parent_external_id=epic_id,
                ))
                result.record_dependency(Dependency(
                    from_id=epic_id, to_id=task_id, type=DependencyType.PARENT_CHILD,
                ))
                for dep in task.depends_on:
                    result.record_dependency(Dependency(
                        from_id=f"task-{dep}", to_id=task_id, type=DependencyType.BLOCKS,
                    ))

                for subtask in task.subtasks:
                    subtask_id = f"subtask-{subtask.temp_id}"
                    result.record_created(CreatedItem(
                        external_id=subtask_id, temp_id=subtask.temp_id, type=ItemType.SUBTASK,
                        title=subtask.title, parent_external_id=task_id,
                    ))
                    result.record_dependency(Dependency(
                        from_id=task_id, to_id=subtask_id, type=DependencyType.PARENT_CHILD,
                    ))
                    for dep in subtask.depends_on:
                        result.record_dependency(Dependency(
                            from_id=f"subtask-{dep}", to_id=subtask_id, type=DependencyType.BLOCKS,
                        ))

        return result
