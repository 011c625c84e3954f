"""Data models for prd-breakdown."""

from .hierarchy import (
    Epic,
    EpicsResponse,
    ParseConfig,
    ParseResponse,
    Priority,
    ProjectContext,
    ResponseMetadata,
    Subtask,
    SubtasksResponse,
    Task,
    TasksResponse,
    TestingCoverage,
    TestingLevel,
    TestingRequirements,
)
from .validation import is_structurally_valid, validate_hierarchy

__all__ = [
    "Epic",
    "EpicsResponse",
    "ParseConfig",
    "ParseResponse",
    "Priority",
    "ProjectContext",
    "ResponseMetadata",
    "Subtask",
    "SubtasksResponse",
    "Task",
    "TasksResponse",
    "TestingCoverage",
    "TestingLevel",
    "TestingRequirements",
    "is_structurally_valid",
    "validate_hierarchy",
]
