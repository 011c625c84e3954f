"""
Tests for the hierarchy models and structural validator.
"""

import pytest

from prd_breakdown.core.exceptions import StructuralError
from prd_breakdown.models import hierarchy
from prd_breakdown.models.hierarchy import (
    Epic,
    ParseConfig,
    ParseResponse,
    Priority,
    ProjectContext,
    Subtask,
    Task,
)
from prd_breakdown.models.validation import is_structurally_valid, validate_hierarchy

from conftest import build_tree


class TestPriority:
    """Tests for priority parsing and ordering."""

    def test_ordering(self):
        """Critical ranks above very-low."""
        ranks = [p.rank for p in Priority]
        assert ranks == sorted(ranks)
        assert Priority.CRITICAL.rank < Priority.VERY_LOW.rank

    @pytest.mark.parametrize("raw,expected", [
        ("critical", Priority.CRITICAL),
        ("HIGH", Priority.HIGH),
        ("very_low", Priority.VERY_LOW),
        ("very low", Priority.VERY_LOW),
        ("urgent-ish", Priority.MEDIUM),
        (None, Priority.MEDIUM),
    ])
    def test_parse(self, raw, expected):
        """Loose strings map to levels; unknown values fall back to medium."""
        assert Priority.parse(raw) == expected

    def test_task_coerces_unknown_priority(self):
        """A generator's unknown priority does not fail the task."""
        task = Task.model_validate({"title": "x", "priority": "p0"})
        assert task.priority == Priority.MEDIUM

    def test_missing_priority_defaults_to_medium(self):
        """Tasks built without a priority are medium."""
        assert Task(title="x").priority == Priority.MEDIUM

    def test_configured_default_priority(self):
        """Missing and unknown priorities take the configured default; known ones stay."""
        context = ParseConfig(default_priority=Priority.HIGH).validation_context()

        missing = Task.model_validate({"title": "x"}, context=context)
        unknown = Task.model_validate({"title": "x", "priority": "p0"}, context=context)
        explicit = Task.model_validate({"title": "x", "priority": "low"}, context=context)

        assert missing.priority == Priority.HIGH
        assert unknown.priority == Priority.HIGH
        assert explicit.priority == Priority.LOW

    def test_default_priority_reaches_nested_tasks(self):
        """The validation context applies to tasks inside a whole response."""
        data = {
            "project": {"product_name": "Todo App"},
            "epics": [{"title": "Core", "tasks": [{"title": "CRUD", "priority": None}]}],
        }
        context = ParseConfig(default_priority=Priority.CRITICAL).validation_context()

        tree = ParseResponse.model_validate(data, context=context)

        assert tree.epics[0].tasks[0].priority == Priority.CRITICAL


class TestCoercion:
    """Tests for tolerant parsing of generator output."""

    def test_null_lists_become_empty(self):
        """Null collections parse as empty lists."""
        epic = Epic.model_validate({"title": "E", "tasks": None, "depends_on": None, "labels": None})
        assert epic.tasks == []
        assert epic.depends_on == []
        assert epic.labels == []

    def test_bare_string_becomes_list(self):
        """A single string where a list is expected becomes a one-item list."""
        project = ProjectContext.model_validate({"product_name": "P", "tech_stack": "python"})
        assert project.tech_stack == ["python"]

    def test_null_testing_becomes_empty_record(self):
        """A null testing object parses as all slots absent."""
        subtask = Subtask.model_validate({"title": "S", "testing": None})
        assert subtask.testing == hierarchy.TestingRequirements()

    def test_context_accepts_object_or_string(self):
        """Epic context keeps whatever structure the generator produced."""
        assert Epic(title="E", context="plain").context == "plain"
        assert Epic(title="E", context={"business_context": "b"}).context == {"business_context": "b"}


class TestMetadata:
    """Tests for derived response metadata."""

    def test_counts(self):
        """Counts cover every level."""
        tree = build_tree(epics=2, tasks=3, subtasks=4)
        metadata = tree.compute_metadata()

        assert metadata.total_epics == 2
        assert metadata.total_tasks == 6
        assert metadata.total_subtasks == 24
        assert metadata.estimated_total_days == 4.0

    def test_coverage_flags(self):
        """A dimension is covered when any level carries it."""
        coverage = build_tree().compute_metadata().testing_coverage

        assert coverage.has_unit_tests
        assert coverage.has_type_tests
        assert coverage.has_e2e_tests
        assert not coverage.has_integration_tests

    def test_no_estimates(self):
        """Total days stay unset when no epic has an estimate."""
        tree = ParseResponse(epics=[Epic(title="E")])
        assert tree.compute_metadata().estimated_total_days is None

    def test_refresh_stores_metadata(self):
        """refresh_metadata replaces stale metadata."""
        tree = build_tree(epics=1, tasks=1, subtasks=1)
        tree.epics[0].tasks[0].subtasks.append(Subtask(title="extra"))
        tree.refresh_metadata()
        assert tree.metadata.total_subtasks == 2


class TestValidator:
    """Tests for validate_hierarchy."""

    def test_valid_tree(self, sample_tree):
        """A fully populated tree passes."""
        validate_hierarchy(sample_tree)
        assert is_structurally_valid(sample_tree)

    def test_missing_product_name(self, sample_tree):
        """Product name is checked first."""
        sample_tree.project.product_name = ""
        sample_tree.epics = []
        with pytest.raises(StructuralError) as exc_info:
            validate_hierarchy(sample_tree)
        assert exc_info.value.field == "project.product_name"

    def test_no_epics(self):
        """At least one epic is required."""
        tree = ParseResponse(project=ProjectContext(product_name="P"))
        with pytest.raises(StructuralError) as exc_info:
            validate_hierarchy(tree)
        assert exc_info.value.field == "epics"

    def test_epic_with_empty_tasks(self):
        """An epic with no tasks names epics[0].tasks."""
        tree = ParseResponse(
            project=ProjectContext(product_name="Todo App"),
            epics=[Epic(temp_id="1", title="Core", tasks=[])],
        )
        with pytest.raises(StructuralError) as exc_info:
            validate_hierarchy(tree)

        assert exc_info.value.field == "epics[0].tasks"
        assert "epic 'Core' has empty tasks array" in str(exc_info.value)

    def test_task_with_empty_subtasks(self, sample_tree):
        """A task with no subtasks names its full path."""
        sample_tree.epics[1].tasks[0].subtasks = []
        with pytest.raises(StructuralError) as exc_info:
            validate_hierarchy(sample_tree)
        assert exc_info.value.field == "epics[1].tasks[0].subtasks"

    def test_first_violation_wins(self, sample_tree):
        """Earlier epics are reported before later ones."""
        sample_tree.epics[0].title = " "
        sample_tree.epics[1].tasks = []
        with pytest.raises(StructuralError) as exc_info:
            validate_hierarchy(sample_tree)
        assert exc_info.value.field == "epics[0].title"

    def test_blank_task_title(self, sample_tree):
        """Task titles are required."""
        sample_tree.epics[0].tasks[1].title = ""
        assert not is_structurally_valid(sample_tree)


class TestParseConfig:
    """Tests for parse configuration defaults."""

    def test_defaults(self):
        """Defaults match the documented targets."""
        config = ParseConfig()
        assert config.target_epics == 3
        assert config.tasks_per_epic == 5
        assert config.subtasks_per_task == 4
        assert config.default_priority == Priority.MEDIUM
        assert config.testing_level.value == "comprehensive"
        assert config.propagate_context is True
        assert config.full_context is False
