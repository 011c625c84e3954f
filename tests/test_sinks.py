"""
Tests for the JSON and beads sinks.
"""

import io
import json
from unittest.mock import AsyncMock

import pytest

from prd_breakdown.core.exceptions import SinkError
from prd_breakdown.models.hierarchy import Priority
from prd_breakdown.sinks.base import DependencyType, ItemType
from prd_breakdown.sinks.beads import BeadsSink, map_priority
from prd_breakdown.sinks.json_sink import JSONSink

from conftest import build_tree


class FakeBd:
    """Stand-in for the bd CLI that hands out sequential issue ids."""

    def __init__(self, fail_titles=()):
        self.calls = []
        self.fail_titles = set(fail_titles)
        self.counter = 0

    async def __call__(self, *args):
        self.calls.append(args)
        if args[0] == "--version":
            return 0, "bd version 0.20.0", ""
        if args[0] == "create":
            if args[1] in self.fail_titles:
                return 1, "", "database locked"
            self.counter += 1
            return 0, json.dumps({"id": f"bd-{self.counter:03d}", "title": args[1]}), ""
        if args[0] == "dep":
            return 0, "", ""
        return 1, "", "unknown command"

    def creates(self):
        return [call for call in self.calls if call[0] == "create"]

    def deps(self):
        return [call[2:] for call in self.calls if call[0] == "dep"]


def option(args, flag):
    return args[args.index(flag) + 1] if flag in args else None


class TestJSONSink:
    """Tests for JSONSink."""

    @pytest.mark.asyncio
    async def test_writes_file(self, sample_tree, tmp_path):
        """The file holds the full hierarchy."""
        path = tmp_path / "tasks.json"

        result = await JSONSink(path).create_items(sample_tree)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["metadata"]["total_subtasks"] == 8
        assert data["epics"][0]["tasks"][0]["subtasks"][0]["description"] == "Subtask 1.1.1 steps"
        assert result.stats.epics == 2
        assert result.stats.tasks == 4
        assert result.stats.subtasks == 8

    @pytest.mark.asyncio
    async def test_writes_stream(self, sample_tree):
        """Without a path the hierarchy goes to the stream."""
        stream = io.StringIO()
        await JSONSink(stream=stream).create_items(sample_tree)
        assert json.loads(stream.getvalue())["epics"][1]["title"] == "Epic 2"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, sample_tree, tmp_path):
        """Dry runs leave the file system alone."""
        path = tmp_path / "tasks.json"
        await JSONSink(path, dry_run=True).create_items(sample_tree)
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_dependency_edges(self, sample_tree):
        """Blocking and parent-child edges use synthetic ids."""
        result = await JSONSink(stream=io.StringIO()).create_items(sample_tree)

        blocks = [(d.from_id, d.to_id) for d in result.dependencies if d.type == DependencyType.BLOCKS]
        assert ("epic-1", "epic-2") in blocks
        assert ("task-1.1", "task-1.2") in blocks
        parent_child = [(d.from_id, d.to_id) for d in result.dependencies if d.type == DependencyType.PARENT_CHILD]
        assert ("task-2.1", "subtask-2.1.2") in parent_child

    @pytest.mark.asyncio
    async def test_unwritable_path(self, sample_tree, tmp_path):
        """Write failures are sink errors."""
        with pytest.raises(SinkError):
            await JSONSink(tmp_path / "missing" / "tasks.json").create_items(sample_tree)


class TestBeadsSink:
    """Tests for BeadsSink with the bd CLI stubbed out."""

    @pytest.fixture
    def bd(self):
        return FakeBd()

    @pytest.fixture
    def sink(self, bd, tmp_path):
        sink = BeadsSink(working_dir=tmp_path)
        sink._run_bd = bd
        return sink

    @pytest.mark.asyncio
    async def test_creates_parents_before_children(self, sink, bd):
        """Every item is created once, with its parent's issue id."""
        tree = build_tree(epics=1, tasks=2, subtasks=2)

        result = await sink.create_items(tree)

        creates = bd.creates()
        assert [c[1] for c in creates] == [
            "Epic 1",
            "Task 1.1", "Subtask 1.1.1", "Subtask 1.1.2",
            "Task 1.2", "Subtask 1.2.1", "Subtask 1.2.2",
        ]
        assert option(creates[0], "--type") == "epic"
        assert option(creates[0], "--parent") is None
        assert option(creates[1], "--parent") == "bd-001"
        assert option(creates[2], "--parent") == "bd-002"
        assert result.stats.epics == 1
        assert result.stats.tasks == 2
        assert result.stats.subtasks == 4
        assert result.failed == []

    @pytest.mark.asyncio
    async def test_maps_fields(self, sink, bd):
        """Priority, design notes and estimates become bd options."""
        tree = build_tree(epics=1, tasks=1, subtasks=1)

        await sink.create_items(tree)

        epic, task, subtask = bd.creates()
        assert option(epic, "--acceptance") == "- Epic 1 works"
        assert option(epic, "--estimate") == str(2 * 8 * 60)
        assert option(task, "--priority") == "1"
        assert option(task, "--design") == "Design for 1.1"
        assert option(subtask, "--estimate") == "45"

    @pytest.mark.asyncio
    async def test_description_blocks(self, sink, bd):
        """Context and testing notes are appended to descriptions."""
        tree = build_tree(epics=1, tasks=1, subtasks=1)

        await sink.create_items(tree)

        subtask_description = option(bd.creates()[2], "--description")
        assert subtask_description.startswith("Subtask 1.1.1 steps")
        assert "**Context:** why it matters" in subtask_description
        assert "- **Unit Tests:** leaf 1.1.1" in subtask_description

    def test_description_without_extras(self, sample_tree):
        """Both blocks can be switched off."""
        sink = BeadsSink(include_context=False, include_testing=False)
        task = sample_tree.epics[0].tasks[0]
        assert sink.build_description(task) == task.description

    def test_structured_context(self, sample_tree):
        """Known context keys are rendered with labels."""
        epic = sample_tree.epics[0].model_copy(update={"context": {"business_context": "saves time"}})
        assert "- **Business Context:** saves time" in BeadsSink().build_description(epic)

    @pytest.mark.asyncio
    async def test_dependencies_point_dependent_to_blocker(self, sink, bd):
        """bd dep add receives the dependent first and the blocker second."""
        tree = build_tree(epics=2, tasks=2, subtasks=1)

        result = await sink.create_items(tree)

        ids = {c.temp_id: c.external_id for c in result.created}
        assert (ids["2"], ids["1"]) in bd.deps()
        assert (ids["1.2"], ids["1.1"]) in bd.deps()
        edge = next(d for d in result.dependencies if d.to_id == ids["2"])
        assert edge.from_id == ids["1"]
        assert edge.type == DependencyType.BLOCKS

    @pytest.mark.asyncio
    async def test_failed_item_skips_children(self, tmp_path):
        """A task that cannot be created is reported and its subtasks skipped."""
        bd = FakeBd(fail_titles={"Task 1.1"})
        sink = BeadsSink(working_dir=tmp_path)
        sink._run_bd = bd

        result = await sink.create_items(build_tree(epics=1, tasks=2, subtasks=2))

        assert [f.item.temp_id for f in result.failed] == ["1.1"]
        assert result.failed[0].item.type == ItemType.TASK
        assert "database locked" in result.failed[0].error
        assert "Subtask 1.1.1" not in [c[1] for c in bd.creates()]
        assert result.stats.subtasks == 2
        # 1.2 depended on the failed task, so no edge is added
        assert bd.deps() == []

    @pytest.mark.asyncio
    async def test_dry_run(self, tmp_path, sample_tree):
        """Dry runs never call bd and produce placeholder ids."""
        sink = BeadsSink(working_dir=tmp_path, dry_run=True)
        sink._run_bd = AsyncMock()

        assert await sink.is_available()
        result = await sink.create_items(sample_tree)

        sink._run_bd.assert_not_called()
        assert result.created[0].external_id == "dry-1"
        assert result.stats.subtasks == 8

    @pytest.mark.asyncio
    async def test_availability(self, sink):
        """bd --version succeeding means available."""
        assert await sink.is_available()

    @pytest.mark.asyncio
    async def test_unavailable_when_bd_missing(self, tmp_path):
        """A missing binary means unavailable."""
        sink = BeadsSink(working_dir=tmp_path)
        sink._run_bd = AsyncMock(side_effect=SinkError("failed to run bd: not found", sink="beads"))
        assert not await sink.is_available()

    @pytest.mark.parametrize("output,expected", [
        ('{"id": "proj-7x2", "title": "t"}', "proj-7x2"),
        ("Created issue: bd-a1b2 Task title", "bd-a1b2"),
        ("nothing useful", None),
    ])
    def test_parse_issue_id(self, output, expected):
        """Issue ids are read from JSON or text output."""
        assert BeadsSink.parse_issue_id(output) == expected

    def test_priority_map(self):
        """Priorities map onto bd's 0-4 scale."""
        assert map_priority(Priority.CRITICAL) == 0
        assert map_priority(Priority.VERY_LOW) == 4
