"""Sinks that receive validated hierarchies."""

from .base import (
    CreatedItem,
    CreateResult,
    CreateStats,
    Dependency,
    DependencyType,
    FailedItem,
    ItemType,
    Sink,
    WorkItem,
)
from .beads import BeadsSink
from .json_sink import JSONSink

__all__ = [
    "BeadsSink",
    "CreatedItem",
    "CreateResult",
    "CreateStats",
    "Dependency",
    "DependencyType",
    "FailedItem",
    "ItemType",
    "JSONSink",
    "Sink",
    "WorkItem",
]
