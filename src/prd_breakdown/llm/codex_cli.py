"""OpenAI Codex CLI generation capability."""

from __future__ import annotations

from typing import Optional

from .base import PROGRESS_INTERVAL_SECONDS, CLICapability

DEFAULT_CODEX_MODEL = "o3"

COMBINED_PROMPT_TEMPLATE = """SYSTEM INSTRUCTIONS:
{system_prompt}

USER REQUEST:
{user_prompt}"""


class CodexCLICapability(CLICapability):
    """Generates via ``codex --quiet``; the CLI has no separate system prompt."""

    name = "codex-cli"
    binary = "codex"

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
    ):
        super().__init__(model or DEFAULT_CODEX_MODEL, timeout, progress_interval)

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        prompt = COMBINED_PROMPT_TEMPLATE.format(system_prompt=system_prompt, user_prompt=user_prompt)
        return await self._run(["--model", self.model, "--quiet"], prompt)
