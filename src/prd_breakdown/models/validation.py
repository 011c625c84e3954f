"""Structural validation for work breakdown hierarchies."""

from __future__ import annotations

from ..core.exceptions import StructuralError
from .hierarchy import ParseResponse


def validate_hierarchy(tree: ParseResponse) -> None:
    """
    Check the structural invariants of a hierarchy.

    The first violation short-circuits. Checks run in this order:
    product name, epics present, then per epic its title and tasks,
    then per task its title and subtasks.

    Args:
        tree: Hierarchy to check

    Raises:
        StructuralError: naming the offending field path
    """
    if not tree.project.product_name.strip():
        raise StructuralError("project.product_name", "required")

    if not tree.epics:
        raise StructuralError("epics", "at least one epic required")

    for i, epic in enumerate(tree.epics):
        if not epic.title.strip():
            raise StructuralError(f"epics[{i}].title", "required")
        if not epic.tasks:
            raise StructuralError(f"epics[{i}].tasks", f"epic '{epic.title}' has empty tasks array")

        for j, task in enumerate(epic.tasks):
            if not task.title.strip():
                raise StructuralError(f"epics[{i}].tasks[{j}].title", "required")
            if not task.subtasks:
                raise StructuralError(
                    f"epics[{i}].tasks[{j}].subtasks",
                    f"task '{task.title}' has empty subtasks array",
                )


def is_structurally_valid(tree: ParseResponse) -> bool:
    """Return True when the hierarchy passes validate_hierarchy."""
    try:
        validate_hierarchy(tree)
    except StructuralError:
        return False
    return True
