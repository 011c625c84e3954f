"""Prompts for the three stages of multi-stage generation."""

from __future__ import annotations

import json
from typing import Any, Optional

from ..models.hierarchy import Epic, ParseConfig, ProjectContext, Task

# =============================================================================
# Stage 1: PRD -> Epics
# =============================================================================

STAGE1_SYSTEM_PROMPT = """You are a PRD parser performing Stage 1: Epic extraction.

Extract the HIGH-LEVEL EPIC STRUCTURE of the PRD. Do NOT generate tasks or subtasks; they are produced later.

## Output Format:
A JSON object with:
1. "project" - product_name, elevator_pitch, target_audience, brand_guidelines, business_goals, user_goals, tech_stack, constraints
2. "epics" - array of epic summaries WITHOUT tasks

## Epic Fields:
- temp_id: "1", "2", "3", ...
- title: major feature or milestone name
- description: what this epic delivers
- context: business and user framing for why it matters
- acceptance_criteria: array of verifiable completion conditions
- testing: object with optional unit_tests, integration_tests, type_tests, e2e_tests strings
- depends_on: epic temp_ids this epic depends on
- estimated_days: working days
- labels: categorization tags

## Guidelines:
- Epics are independently deployable milestones
- Foundation and infrastructure epics come first; the first epic includes project setup
- Acceptance criteria include at least one "can run/demonstrate X"
- Every feature needs an interface users can see

## Output Requirements:
- Return ONLY valid JSON, starting with { and ending with }
- No markdown fencing, no commentary
"""

STAGE1_USER_PROMPT = """Extract epics from this PRD.

Target epics: ~{target_epics} (adjust to the PRD's actual complexity)
Default priority: {default_priority}
Testing level: {testing_level}

---
PRD CONTENT:
---
{document}
---

Return JSON with "project" and "epics" fields. Do NOT include tasks."""

# =============================================================================
# Stage 2: Epic -> Tasks
# =============================================================================

STAGE2_SYSTEM_PROMPT = """You are a PRD parser performing Stage 2: Task generation.

Break ONE EPIC into its TASKS. Do NOT generate subtasks; they are produced later.

## Output Format:
{
  "tasks": [
    {
      "temp_id": "<epic temp_id>.<n>",
      "title": "Task name",
      "description": "What needs to be done",
      "context": "Propagated context plus task-specific context",
      "design_notes": "Technical approach",
      "testing": {"unit_tests": "...", "integration_tests": "..."},
      "priority": "critical | high | medium | low | very-low",
      "depends_on": ["<other task temp_id>"],
      "estimated_hours": 4,
      "labels": ["backend", "api"]
    }
  ]
}

## Guidelines:
- Tasks are 2-8 hours of work each
- Carry the business reason down into each task's context
- Set priority from dependencies and risk
- Include operational tasks: installing dependencies, migrations, type generation
- End sequences of related tasks with a verification task
- Build the UI with or before the backend it calls

## Output Requirements:
- Return ONLY valid JSON with a non-empty "tasks" array
- No markdown fencing, no commentary
"""

STAGE2_USER_PROMPT = """Break down this epic into tasks.

EPIC:
- ID: {epic_id}
- Title: {epic_title}
- Description: {epic_description}
- Context: {epic_context}
- Acceptance Criteria: {acceptance_criteria}

PROJECT CONTEXT:
- Product: {product_name}
- Target Users: {target_audience}
- Tech Stack: {tech_stack}

Target tasks: ~{tasks_per_epic}
Default priority: {default_priority}
{document_section}
Return JSON with a "tasks" array. Do NOT include subtasks."""

# =============================================================================
# Stage 3: Task -> Subtasks
# =============================================================================

STAGE3_SYSTEM_PROMPT = """You are a PRD parser performing Stage 3: Subtask generation.

Break ONE TASK into ATOMIC SUBTASKS that can be completed independently.

## Output Format:
{
  "subtasks": [
    {
      "temp_id": "<task temp_id>.<n>",
      "title": "Atomic action",
      "description": "Specific implementation details",
      "context": "Why this matters",
      "testing": {"unit_tests": "..."},
      "estimated_minutes": 45,
      "depends_on": ["<other subtask temp_id>"],
      "labels": ["backend"]
    }
  ]
}

## Guidelines:
- Subtasks are 30 minutes to 2 hours of work
- Specific enough to implement without clarification
- Do not skip practical steps: installing packages, running builds, checking output
- The last subtask verifies the work: run tests, start the app, check the feature

## Output Requirements:
- Return ONLY valid JSON with a non-empty "subtasks" array
- No markdown fencing, no commentary
"""

STAGE3_USER_PROMPT = """Break down this task into subtasks.

TASK:
- ID: {task_id}
- Title: {task_title}
- Description: {task_description}
- Context: {task_context}
- Design Notes: {design_notes}

EPIC CONTEXT: {epic_context}

PROJECT:
- Product: {product_name}
- Target Users: {target_audience}

Target subtasks: ~{subtasks_per_task}
{document_section}
Return JSON with a "subtasks" array."""

FULL_DOCUMENT_SECTION = """
FULL PRD (for reference):
---
{document}
---
"""


def context_to_text(context: Any) -> str:
    """Render a free-form context payload as prompt text."""
    if context is None:
        return ""
    if isinstance(context, str):
        return context
    return json.dumps(context, ensure_ascii=False)


def _list_text(items: list[str]) -> str:
    return "; ".join(items) if items else "(none)"


def _document_section(document: Optional[str], config: ParseConfig) -> str:
    if config.full_context and document:
        return FULL_DOCUMENT_SECTION.format(document=document)
    return ""


def build_stage1_prompt(document: str, config: ParseConfig) -> str:
    return STAGE1_USER_PROMPT.format(
        target_epics=config.target_epics,
        default_priority=config.default_priority.value,
        testing_level=config.testing_level.value,
        document=document,
    )


def build_stage2_prompt(
    epic: Epic,
    project: ProjectContext,
    config: ParseConfig,
    document: Optional[str] = None,
) -> str:
    """Render the task generation prompt for one epic."""
    return STAGE2_USER_PROMPT.format(
        epic_id=epic.temp_id,
        epic_title=epic.title,
        epic_description=epic.description,
        epic_context=context_to_text(epic.context) if config.propagate_context else "",
        acceptance_criteria=_list_text(epic.acceptance_criteria),
        product_name=project.product_name,
        target_audience=project.target_audience,
        tech_stack=_list_text(project.tech_stack),
        tasks_per_epic=config.tasks_per_epic,
        default_priority=config.default_priority.value,
        document_section=_document_section(document, config),
    )


def build_stage3_prompt(
    task: Task,
    epic_context: str,
    project: ProjectContext,
    config: ParseConfig,
    document: Optional[str] = None,
) -> str:
    """Render the subtask generation prompt for one task."""
    return STAGE3_USER_PROMPT.format(
        task_id=task.temp_id,
        task_title=task.title,
        task_description=task.description,
        task_context=context_to_text(task.context) if config.propagate_context else "",
        design_notes=task.design_notes or "",
        epic_context=epic_context if config.propagate_context else "",
        product_name=project.product_name,
        target_audience=project.target_audience,
        subtasks_per_task=config.subtasks_per_task,
        document_section=_document_section(document, config),
    )
