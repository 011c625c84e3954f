"""
Pytest fixtures for prd-breakdown tests.
"""

import asyncio
import json
import os
import re
from typing import Callable, Optional, Union

import pytest

from prd_breakdown.core.stage_prompts import (
    STAGE1_SYSTEM_PROMPT,
    STAGE2_SYSTEM_PROMPT,
    STAGE3_SYSTEM_PROMPT,
)
from prd_breakdown.llm.base import GenerationCapability
from prd_breakdown.models.hierarchy import (
    Epic,
    ParseResponse,
    Priority,
    ProjectContext,
    Subtask,
    Task,
    TestingRequirements as Testing,
)

TODO_APP_PRD = "# Todo App\n## Features\n1. Create todo\n2. Complete todo"

Handler = Callable[[str, str], Union[str, Exception]]


class ScriptedCapability(GenerationCapability):
    """Deterministic generator stub that records calls and concurrency."""

    name = "scripted"

    def __init__(self, handler: Handler, delay: Union[float, Callable[[str], float]] = 0.0):
        super().__init__(model="stub")
        self.handler = handler
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = 0

    def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed += 1

    def calls_for(self, system_prompt: str) -> list[str]:
        return [user for system, user in self.calls if system == system_prompt]

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delay(user_prompt) if callable(self.delay) else self.delay
            await asyncio.sleep(delay)
            result = self.handler(system_prompt, user_prompt)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1


def prompt_id(user_prompt: str) -> str:
    """Temp id of the epic or task a stage 2/3 prompt was built for."""
    match = re.search(r"^- ID: (\S+)$", user_prompt, re.MULTILINE)
    assert match, "prompt carries no unit id"
    return match.group(1)


def epics_payload(count: int, product_name: str = "Todo App") -> str:
    return json.dumps({
        "project": {
            "product_name": product_name,
            "elevator_pitch": "Track todos",
            "target_audience": "Busy people",
            "tech_stack": ["python", "sqlite"],
        },
        "epics": [
            {
                "temp_id": str(i),
                "title": f"Epic {i}",
                "description": f"Delivers part {i}",
                "context": {"business_context": f"reason {i}"},
                "acceptance_criteria": [f"can demonstrate {i}"],
                "testing": {"unit_tests": "core logic"},
                "depends_on": [] if i == 1 else ["1"],
            }
            for i in range(1, count + 1)
        ],
    })


def tasks_payload(epic_id: str, count: int) -> str:
    return json.dumps({
        "tasks": [
            {
                "temp_id": f"{epic_id}.{j}",
                "title": f"Task {epic_id}.{j}",
                "description": f"Work for epic {epic_id}",
                "priority": "high",
                "testing": {"integration_tests": "api round trip"},
            }
            for j in range(1, count + 1)
        ]
    })


def subtasks_payload(task_id: str, count: int) -> str:
    return json.dumps({
        "subtasks": [
            {
                "temp_id": f"{task_id}.{k}",
                "title": f"Subtask {task_id}.{k}",
                "description": "Do the thing",
                "estimated_minutes": 30,
            }
            for k in range(1, count + 1)
        ]
    })


def staged_handler(
    epics: int = 1,
    tasks: int = 2,
    subtasks: int = 2,
    subtask_override: Optional[Callable[[str], Optional[Union[str, Exception]]]] = None,
    task_override: Optional[Callable[[str], Optional[Union[str, Exception]]]] = None,
) -> Handler:
    """Handler answering each stage prompt with a well-formed payload.

    Overrides receive the unit id and may return a replacement answer.
    """

    def handler(system_prompt: str, user_prompt: str) -> Union[str, Exception]:
        if system_prompt == STAGE1_SYSTEM_PROMPT:
            return epics_payload(epics)
        if system_prompt == STAGE2_SYSTEM_PROMPT:
            epic_id = prompt_id(user_prompt)
            if task_override:
                replacement = task_override(epic_id)
                if replacement is not None:
                    return replacement
            return tasks_payload(epic_id, tasks)
        if system_prompt == STAGE3_SYSTEM_PROMPT:
            task_id = prompt_id(user_prompt)
            if subtask_override:
                replacement = subtask_override(task_id)
                if replacement is not None:
                    return replacement
            return subtasks_payload(task_id, subtasks)
        raise AssertionError("unexpected prompt")

    return handler


def build_tree(epics: int = 2, tasks: int = 2, subtasks: int = 2) -> ParseResponse:
    """A fully populated, valid hierarchy with distinctive leaf content."""
    tree = ParseResponse(
        project=ProjectContext(
            product_name="Todo App",
            elevator_pitch="Track todos",
            target_audience="Busy people",
            business_goals=["retention"],
            tech_stack=["python", "sqlite"],
        ),
        epics=[
            Epic(
                temp_id=str(i),
                title=f"Epic {i}",
                description=f"Epic {i} description",
                context=f"Epic {i} context",
                acceptance_criteria=[f"Epic {i} works"],
                testing=Testing(e2e_tests=f"Epic {i} flow"),
                depends_on=[] if i == 1 else ["1"],
                estimated_days=2.0,
                tasks=[
                    Task(
                        temp_id=f"{i}.{j}",
                        title=f"Task {i}.{j}",
                        description=f"Task {i}.{j} detailed description",
                        design_notes=f"Design for {i}.{j}",
                        testing=Testing(unit_tests=f"unit {i}.{j}", type_tests=f"types {i}.{j}"),
                        priority=Priority.HIGH,
                        depends_on=[f"{i}.{j - 1}"] if j > 1 else [],
                        subtasks=[
                            Subtask(
                                temp_id=f"{i}.{j}.{k}",
                                title=f"Subtask {i}.{j}.{k}",
                                description=f"Subtask {i}.{j}.{k} steps",
                                context="why it matters",
                                testing=Testing(unit_tests=f"leaf {i}.{j}.{k}"),
                                estimated_minutes=45,
                            )
                            for k in range(1, subtasks + 1)
                        ],
                    )
                    for j in range(1, tasks + 1)
                ],
            )
            for i in range(1, epics + 1)
        ],
    )
    return tree.refresh_metadata()


@pytest.fixture
def todo_document() -> str:
    """The small todo-app PRD."""
    return TODO_APP_PRD


@pytest.fixture
def sample_tree() -> ParseResponse:
    """Two epics, two tasks each, two subtasks each."""
    return build_tree()


@pytest.fixture
def staged_capability() -> ScriptedCapability:
    """Stub answering every stage: 1 epic, 2 tasks, 2 subtasks."""
    return ScriptedCapability(staged_handler())


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep developer config files and API keys out of the tests."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in list(os.environ):
        if name.startswith("PRD_BREAKDOWN_"):
            monkeypatch.delenv(name, raising=False)
