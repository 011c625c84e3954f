"""Selection of a generation capability from settings."""

from __future__ import annotations

from typing import Optional

from ..config.settings import Settings
from ..core.exceptions import ConfigurationError
from ..utils.logger import get_logger
from .anthropic_api import AnthropicAPICapability
from .base import GenerationCapability
from .claude_cli import ClaudeCLICapability
from .codex_cli import CodexCLICapability

logger = get_logger(__name__)

# Preference order for provider "auto"
AUTO_ORDER = ("claude-cli", "codex-cli", "anthropic-api")


def build_capability(provider: str, settings: Settings, stage: Optional[str] = None) -> GenerationCapability:
    """Instantiate a capability without checking availability."""
    model = settings.model_for_stage(stage)
    if provider == "claude-cli":
        return ClaudeCLICapability(model=model, timeout=settings.call_timeout_seconds)
    if provider == "codex-cli":
        return CodexCLICapability(model=model, timeout=settings.call_timeout_seconds)
    if provider == "anthropic-api":
        return AnthropicAPICapability(
            api_key=settings.anthropic_api_key,
            model=model,
            max_tokens=settings.max_tokens,
            timeout=settings.call_timeout_seconds or 600.0,
        )
    raise ConfigurationError(f"unknown llm provider '{provider}'", details={"provider": provider})


def detect_capability(settings: Settings, stage: Optional[str] = None) -> GenerationCapability:
    """
    Pick the capability to generate with.

    Args:
        settings: Resolved settings
        stage: Optional stage name ("epics", "tasks", "subtasks") for model overrides

    Returns:
        An available capability

    Raises:
        ConfigurationError: if the requested provider, or any provider under auto, is unavailable
    """
    if settings.llm != "auto":
        capability = build_capability(settings.llm, settings, stage)
        if not capability.is_available():
            raise ConfigurationError(
                f"llm provider '{settings.llm}' is not available",
                details={"provider": settings.llm},
            )
        return capability

    for provider in AUTO_ORDER:
        capability = build_capability(provider, settings, stage)
        if capability.is_available():
            logger.debug(f"Auto-detected generator: {capability.describe()}")
            return capability

    raise ConfigurationError(
        "no generator available: install the claude or codex CLI, or set ANTHROPIC_API_KEY",
        details={"tried": list(AUTO_ORDER)},
    )
