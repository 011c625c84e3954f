"""Generation capabilities."""

from .anthropic_api import AnthropicAPICapability
from .base import CLICapability, GenerationCapability
from .claude_cli import ClaudeCLICapability
from .codex_cli import CodexCLICapability
from .detector import build_capability, detect_capability

__all__ = [
    "AnthropicAPICapability",
    "CLICapability",
    "ClaudeCLICapability",
    "CodexCLICapability",
    "GenerationCapability",
    "build_capability",
    "detect_capability",
]
