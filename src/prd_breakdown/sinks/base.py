"""Sink boundary: where a validated hierarchy is delivered."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..models.hierarchy import ParseResponse


class ItemType(str, Enum):
    """Level of a work item."""
    EPIC = "epic"
    TASK = "task"
    SUBTASK = "subtask"


class DependencyType(str, Enum):
    """Kind of edge between created items."""
    BLOCKS = "blocks"
    PARENT_CHILD = "parent-child"


class WorkItem(BaseModel):
    """Any item in the hierarchy, identified by temp id."""
    type: ItemType
    temp_id: str
    title: str
    parent_temp_id: Optional[str] = None


class CreatedItem(BaseModel):
    """An item the sink created."""
    external_id: str = Field(..., description="ID assigned by the target system")
    temp_id: str
    type: ItemType
    title: str
    parent_external_id: Optional[str] = None


class FailedItem(BaseModel):
    """An item the sink could not create."""
    item: WorkItem
    error: str


class Dependency(BaseModel):
    """Edge between two created items, by external id."""
    from_id: str
    to_id: str
    type: DependencyType


class CreateStats(BaseModel):
    epics: int = 0
    tasks: int = 0
    subtasks: int = 0
    dependencies: int = 0


class CreateResult(BaseModel):
    """Everything a sink did with one hierarchy."""
    created: list[CreatedItem] = Field(default_factory=list)
    failed: list[FailedItem] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)
    stats: CreateStats = Field(default_factory=CreateStats)

    def record_created(self, item: CreatedItem) -> None:
        self.created.append(item)
        if item.type == ItemType.EPIC:
            self.stats.epics += 1
        elif item.type == ItemType.TASK:
            self.stats.tasks += 1
        else:
            self.stats.subtasks += 1

    def record_dependency(self, dependency: Dependency) -> None:
        self.dependencies.append(dependency)
        self.stats.dependencies += 1


class Sink(ABC):
    """Abstract base class for hierarchy sinks."""

    name: str = "sink"

    @abstractmethod
    async def is_available(self) -> bool:
        """Check whether the sink can be used."""
        pass

    @abstractmethod
    async def create_items(self, tree: ParseResponse) -> CreateResult:
        """Create every item of an already validated hierarchy."""
        pass
