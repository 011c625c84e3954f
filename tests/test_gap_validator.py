"""
Tests for advisory gap validation.
"""

import json

import pytest

from prd_breakdown.core.exceptions import AdvisoryError, CapabilityError
from prd_breakdown.core.gap_validator import GapReport, GapValidator
from prd_breakdown.core.review_prompts import summarize_plan

from conftest import ScriptedCapability


class TestGapValidator:
    """Tests for GapValidator.validate."""

    @pytest.mark.asyncio
    async def test_reports_gaps(self, sample_tree, todo_document):
        """Gaps and warnings are parsed from the answer."""
        payload = json.dumps({
            "is_valid": False,
            "gaps": ["No task installs dependencies"],
            "warnings": "Verification only at the end",
        })
        capability = ScriptedCapability(lambda system, user: payload)

        report = await GapValidator(capability).validate(sample_tree, todo_document)

        assert not report.is_valid
        assert report.gaps == ["No task installs dependencies"]
        assert report.warnings == ["Verification only at the end"]
        assert todo_document in capability.calls[0][1]

    @pytest.mark.asyncio
    async def test_never_edits_tree(self, sample_tree, todo_document):
        """The hierarchy is left exactly as it was."""
        before = sample_tree.model_dump()
        capability = ScriptedCapability(lambda system, user: '{"is_valid": true, "gaps": [], "warnings": []}')

        report = await GapValidator(capability).validate(sample_tree, todo_document)

        assert report.render() == "No gaps found"
        assert sample_tree.model_dump() == before

    @pytest.mark.asyncio
    async def test_failure_is_advisory(self, sample_tree, todo_document):
        """Backend failures surface as AdvisoryError."""
        capability = ScriptedCapability(lambda system, user: CapabilityError("offline"))

        with pytest.raises(AdvisoryError, match="offline"):
            await GapValidator(capability).validate(sample_tree, todo_document)


class TestGapReport:
    """Tests for GapReport rendering and the plan summary."""

    def test_render_lists_gaps_and_warnings(self):
        """Both sections are rendered."""
        report = GapReport(is_valid=False, gaps=["a"], warnings=["b"])
        assert report.render() == "Gaps:\n  - a\nWarnings:\n  - b"

    def test_summary_lists_every_level(self, sample_tree):
        """The plan summary carries epics, tasks and subtasks."""
        summary = summarize_plan(sample_tree)
        assert "### Epic 1: Epic 1" in summary
        assert "  - Task 1.2: Task 1.2" in summary
        assert "    - 2.2.2: Subtask 2.2.2" in summary
