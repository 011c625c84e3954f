"""Prompts for the structural review and gap validation passes."""

from __future__ import annotations

import json
from typing import Any

from ..models.hierarchy import ParseResponse

# =============================================================================
# Structural Review
# =============================================================================

REVIEW_SYSTEM_PROMPT = """You review a generated PRD breakdown skeleton and fix structural issues.

## Check For and Fix:
1. **Missing foundation epic** - Epic 1 MUST be "Project Foundation" or "Project Setup". If missing, add it with temp_id "1" and renumber the other epics.
2. **Feature epics not depending on Epic 1** - every epic after the first MUST list "1" in depends_on.
3. **Missing setup tasks** - the foundation epic covers project initialization, dependency installation, database and environment setup for the tech stack.
4. **Incorrect ordering** - foundation first, then features.
5. **Missing cross-task dependencies** - if Task B uses something Task A creates, B depends on A (database -> API -> UI chains).

## Output Format:
{
  "review_notes": "What was fixed (or 'No changes needed')",
  "project": {"product_name": "...", "tech_stack": ["..."]},
  "epics": [
    {"temp_id": "1", "title": "...", "depends_on": [], "tasks": [
      {"temp_id": "1.1", "title": "...", "depends_on": []}
    ]}
  ]
}

## Rules:
- Keep existing temp_ids for epics and tasks you did not change
- New epics and tasks may carry description fields
- If nothing needs fixing, return the structure unchanged with review_notes "No changes needed"
- Return ONLY valid JSON, starting with { and ending with }
"""

REVIEW_USER_PROMPT = """Review this generated PRD breakdown and fix any structural issues.

## TECH STACK FROM PRD
{tech_stack}

## GENERATED STRUCTURE
{structure}

## REQUIREMENTS
1. Epic 1 MUST be "Project Foundation" with setup for: {tech_stack}
2. All feature epics MUST have depends_on including "1"
3. Dependencies follow setup -> backend -> frontend chains
4. Tasks do not assume infrastructure exists without depending on its setup

Return the corrected JSON with a "review_notes" field explaining the changes."""

# =============================================================================
# Gap Validation
# =============================================================================

GAP_VALIDATION_SYSTEM_PROMPT = """You are a plan validator. You review a generated task breakdown and look for GAPS that would prevent successful implementation.

Identify MISSING steps; do not critique the plan's quality.

## What To Check:
1. **Setup gaps** - project initialization, dependency installation, environment setup
2. **Build gaps** - generated or compiled code has a build step
3. **Interface gaps** - a backend has a UI or other way to use it
4. **Verification gaps** - each epic's acceptance criteria can be tested with the tasks provided
5. **Dependency gaps** - dependencies are installed before code uses them
6. **Order gaps** - setup, then implementation, then verification

## Output Format:
{
  "is_valid": true,
  "gaps": ["Missing task to install dependencies"],
  "warnings": ["Task 2.3 might need to come before 2.2"]
}

A gap would break the build or flow; a warning is merely suboptimal. Only flag practical problems.
Return ONLY valid JSON.
"""

GAP_VALIDATION_USER_PROMPT = """Review this plan for GAPS that would prevent successful implementation.

{summary}
## ORIGINAL PRD (for context)
{document}

Return JSON with is_valid, gaps, and warnings."""


def build_review_projection(tree: ParseResponse) -> dict[str, Any]:
    """Project a hierarchy down to ids, titles and dependency edges."""
    return {
        "project": {
            "product_name": tree.project.product_name,
            "tech_stack": list(tree.project.tech_stack),
        },
        "epics": [
            {
                "temp_id": epic.temp_id,
                "title": epic.title,
                "depends_on": list(epic.depends_on),
                "tasks": [
                    {
                        "temp_id": task.temp_id,
                        "title": task.title,
                        "depends_on": list(task.depends_on),
                    }
                    for task in epic.tasks
                ],
            }
            for epic in tree.epics
        ],
    }


def build_review_prompt(tree: ParseResponse) -> str:
    """Render the review prompt from the lightweight projection."""
    tech_stack = ", ".join(tree.project.tech_stack) or "Not specified"
    structure = json.dumps(build_review_projection(tree), indent=2, ensure_ascii=False)
    return REVIEW_USER_PROMPT.format(tech_stack=tech_stack, structure=structure)


def summarize_plan(tree: ParseResponse) -> str:
    """Summarize titles and acceptance criteria for gap validation."""
    lines = [
        "## GENERATED PLAN SUMMARY",
        "",
        f"Project: {tree.project.product_name}",
        f"Tech Stack: {', '.join(tree.project.tech_stack) or 'Not specified'}",
        "",
    ]
    for epic in tree.epics:
        lines.append(f"### Epic {epic.temp_id}: {epic.title}")
        if epic.acceptance_criteria:
            lines.append(f"Acceptance: {'; '.join(epic.acceptance_criteria)}")
        for task in epic.tasks:
            lines.append(f"  - Task {task.temp_id}: {task.title}")
            for subtask in task.subtasks:
                lines.append(f"    - {subtask.temp_id}: {subtask.title}")
        lines.append("")
    return "\n".join(lines) + "\n"


def build_gap_validation_prompt(tree: ParseResponse, document: str) -> str:
    return GAP_VALIDATION_USER_PROMPT.format(summary=summarize_plan(tree), document=document)
