"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and an optional YAML config file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.exceptions import ConfigurationError
from ..models.hierarchy import ParseConfig, Priority, TestingLevel
from ..utils.logger import get_logger

logger = get_logger(__name__)

CONFIG_FILE_NAME = ".prd-breakdown.yaml"

PROVIDERS = ("auto", "claude-cli", "codex-cli", "anthropic-api")
OUTPUTS = ("beads", "json")


class Settings(BaseSettings):
    """prd-breakdown settings."""

    model_config = SettingsConfigDict(
        env_prefix="PRD_BREAKDOWN_",
        extra="ignore",
        populate_by_name=True,
    )

    # Generation backend
    llm: str = Field(default="auto", description="Provider: auto, claude-cli, codex-cli, anthropic-api")
    model: Optional[str] = Field(default=None, description="Model for every stage")
    epic_model: Optional[str] = Field(default=None, description="Model override for stage 1")
    task_model: Optional[str] = Field(default=None, description="Model override for stage 2")
    subtask_model: Optional[str] = Field(default=None, description="Model override for stage 3")
    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("anthropic_api_key", "PRD_BREAKDOWN_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
        description="API key for the anthropic-api provider",
    )
    max_tokens: int = Field(default=16384, ge=1, description="Max completion tokens for API calls")
    call_timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Per-call timeout")

    # Decomposition targets
    epics: int = Field(default=3, ge=1, description="Target number of epics")
    tasks_per_epic: int = Field(default=5, ge=1, description="Target tasks per epic")
    subtasks_per_task: int = Field(default=4, ge=1, description="Target subtasks per task")
    priority: Priority = Field(default=Priority.MEDIUM, description="Default task priority")
    testing: TestingLevel = Field(default=TestingLevel.COMPREHENSIVE, description="Testing detail level")
    propagate_context: bool = Field(default=True, description="Carry context down the hierarchy")
    full_context: bool = Field(default=False, description="Send the whole PRD to stage 2 and 3 prompts")

    # Pipeline behaviour
    smart_threshold: int = Field(default=300, ge=0, description="Line count above which multi-stage is used")
    review: bool = Field(default=False, description="Run the structural review pass")
    validate_plan: bool = Field(default=False, description="Run the advisory gap validation pass")

    # Output
    output: str = Field(default="beads", description="Sink: beads or json")
    output_path: Optional[str] = Field(default=None, description="File for the json sink")
    working_dir: str = Field(default=".", description="Working directory for the beads sink")
    include_context: bool = Field(default=True, description="Include context in created issues")
    include_testing: bool = Field(default=True, description="Include testing in created issues")

    log_level: str = Field(default="WARNING", description="Logging level when neither -v nor -q is given")

    @field_validator("llm")
    @classmethod
    def validate_llm(cls, v: str) -> str:
        """Ensure the provider is known."""
        v = v.lower()
        if v not in PROVIDERS:
            raise ValueError(f"llm must be one of {PROVIDERS}")
        return v

    @field_validator("output")
    @classmethod
    def validate_output(cls, v: str) -> str:
        """Ensure the sink is known."""
        v = v.lower()
        if v not in OUTPUTS:
            raise ValueError(f"output must be one of {OUTPUTS}")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: Any) -> Any:
        """Accept loosely formatted priority names."""
        if isinstance(v, str):
            normalized = v.strip().lower().replace("_", "-")
            try:
                return Priority(normalized)
            except ValueError:
                raise ValueError(f"unknown priority '{v}'") from None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    def model_for_stage(self, stage: Optional[str] = None) -> Optional[str]:
        """Model to use for a stage, falling back to the shared model."""
        overrides = {
            "epics": self.epic_model,
            "tasks": self.task_model,
            "subtasks": self.subtask_model,
        }
        return overrides.get(stage or "") or self.model

    def to_parse_config(self) -> ParseConfig:
        return ParseConfig(
            target_epics=self.epics,
            tasks_per_epic=self.tasks_per_epic,
            subtasks_per_task=self.subtasks_per_task,
            default_priority=self.priority,
            testing_level=self.testing,
            propagate_context=self.propagate_context,
            full_context=self.full_context,
        )


def find_config_file(
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Optional[Path]:
    """Locate the config file in the working directory, then the home directory."""
    for directory in (cwd or Path.cwd(), home or Path.home()):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file into a dict of settings values."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")

    # Allow dashes in keys the way CLI flags spell them
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> Settings:
    """
    Build settings from defaults, environment, config file and overrides.

    Later sources win: environment < config file < overrides.

    Args:
        config_path: Explicit config file; searched for when omitted
        overrides: Values from the command line (None values are ignored)

    Returns:
        Settings instance
    """
    values: dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigurationError(f"config file not found: {path}")
    else:
        path = find_config_file()

    if path is not None:
        logger.debug(f"Loading config from {path}")
        values.update(read_config_file(path))

    if overrides:
        values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Settings(**values)
    except ValueError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
