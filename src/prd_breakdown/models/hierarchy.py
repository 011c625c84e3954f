"""Work Breakdown Hierarchy Models.

This module defines the data models for:
- Project context extracted from a PRD
- The Epic -> Task -> Subtask hierarchy and its testing requirements
- Derived response metadata (counts and testing coverage)
- Parse configuration and the per-stage generator payloads

Field names are the snake_case JSON keys the generator emits and the
checkpoint file stores, so one schema serves both.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Iterator, Optional

from pydantic import BaseModel, BeforeValidator, Field, ValidationInfo, field_validator


def _coerce_str_list(value: Any) -> Any:
    """Accept null or a bare string where a list of strings is expected."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [item if isinstance(item, str) else str(item) for item in value if item is not None]
    return value


def _coerce_text(value: Any) -> Any:
    """Flatten list answers into a single line of text."""
    if isinstance(value, list):
        return "; ".join(str(item) for item in value)
    return value


def _coerce_str(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


StrList = Annotated[list[str], BeforeValidator(_coerce_str_list)]
Text = Annotated[str, BeforeValidator(_coerce_str)]
OptionalText = Annotated[Optional[str], BeforeValidator(_coerce_text)]


# =============================================================================
# Enums
# =============================================================================

class Priority(str, Enum):
    """Priority levels for tasks, most urgent first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very-low"

    @property
    def rank(self) -> int:
        """Ordinal position, 0 being the most urgent."""
        return list(Priority).index(self)

    @classmethod
    def parse(cls, value: Any, default: Optional["Priority"] = None) -> "Priority":
        """Map a loosely formatted priority string to a level."""
        fallback = default or cls.MEDIUM
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return fallback
        normalized = value.strip().lower().replace("_", "-").replace(" ", "-")
        if normalized == "verylow":
            normalized = "very-low"
        try:
            return cls(normalized)
        except ValueError:
            return fallback


class TestingLevel(str, Enum):
    """How verbose generated testing requirements should be."""
    MINIMAL = "minimal"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


# =============================================================================
# Hierarchy Models
# =============================================================================

class TestingRequirements(BaseModel):
    """Per-dimension testing notes; an absent slot means not applicable."""
    unit_tests: OptionalText = None
    integration_tests: OptionalText = None
    type_tests: OptionalText = None
    e2e_tests: OptionalText = None


def _coerce_testing(value: Any) -> Any:
    if value is None or value == "":
        return TestingRequirements()
    return value


TestingField = Annotated[TestingRequirements, BeforeValidator(_coerce_testing)]


class ProjectContext(BaseModel):
    """Summary of the source document, extracted once."""
    product_name: Text = Field("", description="Name of the product")
    elevator_pitch: Text = Field("", description="One sentence: what and why")
    target_audience: Text = Field("", description="Primary and secondary users")
    business_goals: StrList = Field(default_factory=list)
    user_goals: StrList = Field(default_factory=list)
    brand_guidelines: Any = Field(None, description="Voice, tone, visual identity (string or object)")
    tech_stack: StrList = Field(default_factory=list)
    constraints: StrList = Field(default_factory=list)


class Subtask(BaseModel):
    """Atomic unit of work; has no children."""
    temp_id: Text = Field("", description="Hierarchical ID like '1.1.1'")
    title: Text = ""
    description: Text = ""
    context: OptionalText = Field(None, description="Inherited context reminder")
    testing: TestingField = Field(default_factory=TestingRequirements)
    estimated_minutes: Optional[int] = None
    depends_on: StrList = Field(default_factory=list)
    labels: StrList = Field(default_factory=list)


class Task(BaseModel):
    """A unit of work under an epic."""
    temp_id: Text = Field("", description="Hierarchical ID like '1.1'")
    title: Text = ""
    description: Text = ""
    context: Any = Field(None, description="Propagated plus task-specific context (object or string)")
    design_notes: OptionalText = None
    testing: TestingField = Field(default_factory=TestingRequirements)
    priority: Priority = Field(None, validate_default=True, description="Missing or unknown values take the configured default")
    subtasks: list[Subtask] = Field(default_factory=list)
    depends_on: StrList = Field(default_factory=list)
    estimated_hours: Optional[float] = None
    labels: StrList = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any, info: ValidationInfo) -> Priority:
        default = (info.context or {}).get("default_priority")
        return Priority.parse(value, default)

    @field_validator("subtasks", mode="before")
    @classmethod
    def _null_subtasks(cls, value: Any) -> Any:
        return [] if value is None else value


class Epic(BaseModel):
    """A major milestone."""
    temp_id: Text = Field("", description="Simple ID like '1'")
    title: Text = ""
    description: Text = ""
    context: Any = Field(None, description="Business/user context (object or string)")
    acceptance_criteria: StrList = Field(default_factory=list)
    testing: TestingField = Field(default_factory=TestingRequirements)
    tasks: list[Task] = Field(default_factory=list)
    depends_on: StrList = Field(default_factory=list)
    estimated_days: Optional[float] = None
    labels: StrList = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def _null_tasks(cls, value: Any) -> Any:
        return [] if value is None else value


# =============================================================================
# Response Models
# =============================================================================

class TestingCoverage(BaseModel):
    """Which testing dimensions appear anywhere in the hierarchy."""
    has_unit_tests: bool = False
    has_integration_tests: bool = False
    has_type_tests: bool = False
    has_e2e_tests: bool = False


class ResponseMetadata(BaseModel):
    """Summary statistics derived from the hierarchy."""
    total_epics: int = 0
    total_tasks: int = 0
    total_subtasks: int = 0
    estimated_total_days: Optional[float] = None
    testing_coverage: TestingCoverage = Field(default_factory=TestingCoverage)


class ParseResponse(BaseModel):
    """Root aggregate handed between pipeline stages and to sinks."""
    project: ProjectContext = Field(default_factory=ProjectContext)
    epics: list[Epic] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    @field_validator("epics", mode="before")
    @classmethod
    def _null_epics(cls, value: Any) -> Any:
        return [] if value is None else value

    def iter_tasks(self) -> Iterator[tuple[Epic, Task]]:
        for epic in self.epics:
            for task in epic.tasks:
                yield epic, task

    def count_tasks(self) -> int:
        return sum(len(epic.tasks) for epic in self.epics)

    def count_subtasks(self) -> int:
        return sum(len(task.subtasks) for _, task in self.iter_tasks())

    def compute_metadata(self) -> ResponseMetadata:
        """Derive counts, total estimate and testing coverage from the tree."""
        coverage = TestingCoverage()

        def mark(testing: TestingRequirements) -> None:
            if testing.unit_tests:
                coverage.has_unit_tests = True
            if testing.integration_tests:
                coverage.has_integration_tests = True
            if testing.type_tests:
                coverage.has_type_tests = True
            if testing.e2e_tests:
                coverage.has_e2e_tests = True

        for epic in self.epics:
            mark(epic.testing)
            for task in epic.tasks:
                mark(task.testing)
                for subtask in task.subtasks:
                    mark(subtask.testing)

        estimates = [epic.estimated_days for epic in self.epics if epic.estimated_days is not None]

        return ResponseMetadata(
            total_epics=len(self.epics),
            total_tasks=self.count_tasks(),
            total_subtasks=self.count_subtasks(),
            estimated_total_days=sum(estimates) if estimates else None,
            testing_coverage=coverage,
        )

    def refresh_metadata(self) -> "ParseResponse":
        """Store freshly computed metadata on this tree and return it."""
        self.metadata = self.compute_metadata()
        return self


# =============================================================================
# Configuration and Stage Payloads
# =============================================================================

class ParseConfig(BaseModel):
    """Generation targets and framing options."""
    target_epics: int = Field(3, ge=1, description="Approximate number of epics")
    tasks_per_epic: int = Field(5, ge=1, description="Approximate tasks per epic")
    subtasks_per_task: int = Field(4, ge=1, description="Approximate subtasks per task")
    default_priority: Priority = Priority.MEDIUM
    testing_level: TestingLevel = TestingLevel.COMPREHENSIVE
    propagate_context: bool = True
    full_context: bool = Field(
        False,
        description="Pass the whole document to task and subtask prompts as well",
    )

    def validation_context(self) -> dict[str, Any]:
        """Context for validating generator output against these settings."""
        return {"default_priority": self.default_priority}


class EpicsResponse(BaseModel):
    """Stage 1 payload: project context plus epic summaries."""
    project: ProjectContext = Field(default_factory=ProjectContext)
    epics: list[Epic] = Field(default_factory=list)

    @field_validator("epics", mode="before")
    @classmethod
    def _null_epics(cls, value: Any) -> Any:
        return [] if value is None else value


class TasksResponse(BaseModel):
    """Stage 2 payload for one epic."""
    tasks: list[Task] = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def _null_tasks(cls, value: Any) -> Any:
        return [] if value is None else value


class SubtasksResponse(BaseModel):
    """Stage 3 payload for one task."""
    subtasks: list[Subtask] = Field(default_factory=list)

    @field_validator("subtasks", mode="before")
    @classmethod
    def _null_subtasks(cls, value: Any) -> Any:
        return [] if value is None else value
