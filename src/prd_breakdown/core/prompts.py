"""Prompts for single-shot hierarchy generation."""

from __future__ import annotations

from ..models.hierarchy import ParseConfig

SYSTEM_PROMPT = """You are a PRD parser. You receive a Product Requirements Document and output ONLY a valid JSON object. No explanations, no questions, no markdown.

You produce a HIERARCHICAL, dependency-aware breakdown of the document.

## Output Structure:
1. **Project Context** - business purpose, target users, brand guidelines, goals, tech stack, constraints
2. **Epics** - major features or milestones (1-4 weeks each)
3. **Tasks** - logical work units within epics (2-8 hours each)
4. **Subtasks** - atomic actions within tasks (30 minutes to 2 hours each)

## Context Propagation:
Context from the PRD gets lost unless it is carried down the hierarchy.
- Epic context is inherited by all its tasks
- Task context is inherited by all its subtasks
- Each subtask's "context" field reminds the implementer WHY the work matters and WHO it is for

## Testing At Every Level:
Every epic, task and subtask carries a "testing" object with these optional string fields:
- unit_tests: functions or components to test in isolation
- integration_tests: how components interact
- type_tests: type safety and runtime validation
- e2e_tests: user flows to verify
Omit a field when that kind of testing does not apply.

## Identifiers and Dependencies:
- Epics use temp_id "1", "2", ...
- Tasks use "<epic>.<n>", e.g. "1.1"
- Subtasks use "<task>.<n>", e.g. "1.1.1"
- depends_on lists temp_ids at the same level that must finish first

## Practical Steps:
- The first epic sets up the project: environment, dependencies, basic configuration
- Include installation, migration and build steps where the work needs them
- Close each sequence of related work with a verification step
- Every feature needs an interface so users can see it work

## Priorities:
Use one of: critical, high, medium, low, very-low. Evaluate each task; do not just copy the default.
"""

USER_PROMPT_TEMPLATE = """Analyze this PRD and generate a hierarchical breakdown.

## Structure Targets (rough guidance, let the PRD's scope decide):
- Target epics: ~{target_epics}
- Target tasks per epic: ~{tasks_per_epic}
- Target subtasks per task: ~{subtasks_per_task}

Default priority: {default_priority}
Testing level: {testing_level}
Propagate context: {propagate_context}

---
PRD CONTENT:
---
{document}
---

Generate a JSON object with:
1. "project" - string fields product_name, elevator_pitch, target_audience, brand_guidelines (or null); string arrays business_goals, user_goals, tech_stack, constraints
2. "epics" - each with temp_id, title, description, context, acceptance_criteria, testing, tasks, depends_on, estimated_days, labels
3. each task with temp_id, title, description, context, design_notes, testing, priority, subtasks, depends_on, estimated_hours, labels
4. each subtask with temp_id, title, description, context, testing, estimated_minutes, depends_on, labels

## MANDATORY STRUCTURE (validated):
- Every epic MUST have a non-empty "tasks" array
- Every task MUST have a non-empty "subtasks" array

## Output Requirements:
- Return ONLY the JSON object, starting with {{ and ending with }}
- No markdown fencing, no commentary
"""


def build_user_prompt(document: str, config: ParseConfig) -> str:
    """Render the single-shot user prompt for a document."""
    return USER_PROMPT_TEMPLATE.format(
        target_epics=config.target_epics,
        tasks_per_epic=config.tasks_per_epic,
        subtasks_per_task=config.subtasks_per_task,
        default_priority=config.default_priority.value,
        testing_level=config.testing_level.value,
        propagate_context=str(config.propagate_context).lower(),
        document=document,
    )
