"""Claude Code CLI generation capability."""

from __future__ import annotations

import os
import tempfile
from typing import Optional

from .base import PROGRESS_INTERVAL_SECONDS, CLICapability

DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-20250514"


class ClaudeCLICapability(CLICapability):
    """Generates via ``claude --print`` with JSON output.

    The system prompt goes through a temporary file, the user prompt on
    stdin. Output is the CLI's ``{"type", "result", "is_error"}`` envelope,
    which the JSON extractor unwraps.
    """

    name = "claude-cli"
    binary = "claude"

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
    ):
        super().__init__(model or DEFAULT_CLAUDE_MODEL, timeout, progress_interval)

    def build_args(self, system_prompt_file: str) -> list[str]:
        return [
            "--model", self.model,
            "--system-prompt-file", system_prompt_file,
            "--print",
            "--output-format", "json",
            "--tools", "",
            "--no-session-persistence",
        ]

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        fd, path = tempfile.mkstemp(prefix="prd-breakdown-system-", suffix=".md")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(system_prompt)
            return await self._run(self.build_args(path), user_prompt)
        finally:
            os.unlink(path)
