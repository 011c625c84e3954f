"""
Tests for settings loading.
"""

import pytest

from prd_breakdown.config.settings import (
    CONFIG_FILE_NAME,
    Settings,
    find_config_file,
    load_settings,
    read_config_file,
)
from prd_breakdown.core.exceptions import ConfigurationError
from prd_breakdown.models import hierarchy
from prd_breakdown.models.hierarchy import Priority


class TestSettings:
    """Tests for the Settings model."""

    def test_defaults(self):
        """Defaults match the documented behaviour."""
        settings = Settings()
        assert settings.llm == "auto"
        assert settings.smart_threshold == 300
        assert settings.output == "beads"
        assert settings.priority == Priority.MEDIUM
        assert not settings.review
        assert not settings.validate_plan

    def test_environment(self, monkeypatch):
        """Prefixed environment variables are read."""
        monkeypatch.setenv("PRD_BREAKDOWN_EPICS", "6")
        monkeypatch.setenv("PRD_BREAKDOWN_OUTPUT", "JSON")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")

        settings = Settings()

        assert settings.epics == 6
        assert settings.output == "json"
        assert settings.anthropic_api_key == "sk-env"

    def test_rejects_unknown_provider(self):
        """Unknown providers are rejected."""
        with pytest.raises(ValueError):
            Settings(llm="gpt-cli")

    def test_priority_spelling(self):
        """Underscores are accepted in priority names."""
        assert Settings(priority="VERY_LOW").priority == Priority.VERY_LOW

    def test_to_parse_config(self):
        """Targets carry over into the parse configuration."""
        config = Settings(epics=2, subtasks_per_task=7, testing="minimal", full_context=True).to_parse_config()
        assert config.target_epics == 2
        assert config.subtasks_per_task == 7
        assert config.testing_level == hierarchy.TestingLevel.MINIMAL
        assert config.full_context


class TestConfigFile:
    """Tests for config file discovery and loading."""

    def test_find_prefers_working_directory(self, tmp_path):
        """The working directory file wins over the home one."""
        cwd = tmp_path / "project"
        home = tmp_path / "home"
        cwd.mkdir()
        home.mkdir()
        (home / CONFIG_FILE_NAME).write_text("epics: 2\n", encoding="utf-8")
        assert find_config_file(cwd, home) == home / CONFIG_FILE_NAME

        (cwd / CONFIG_FILE_NAME).write_text("epics: 4\n", encoding="utf-8")
        assert find_config_file(cwd, home) == cwd / CONFIG_FILE_NAME

    def test_dashed_keys(self, tmp_path):
        """Keys may be spelled like command line flags."""
        path = tmp_path / "config.yaml"
        path.write_text("tasks-per-epic: 8\nsmart-threshold: 0\n", encoding="utf-8")
        assert read_config_file(path) == {"tasks_per_epic": 8, "smart_threshold": 0}

    def test_overrides_beat_file(self, tmp_path):
        """Command line values win; None overrides are ignored."""
        path = tmp_path / "config.yaml"
        path.write_text("epics: 4\nreview: true\noutput: json\n", encoding="utf-8")

        settings = load_settings(path, {"epics": 9, "review": None})

        assert settings.epics == 9
        assert settings.review is True
        assert settings.output == "json"

    def test_file_beats_environment(self, tmp_path, monkeypatch):
        """Config file values override environment variables."""
        monkeypatch.setenv("PRD_BREAKDOWN_EPICS", "5")
        path = tmp_path / "config.yaml"
        path.write_text("epics: 2\n", encoding="utf-8")

        assert load_settings(path).epics == 2

    def test_discovers_file_in_working_directory(self, tmp_path, monkeypatch):
        """Without an explicit path the working directory is searched."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / CONFIG_FILE_NAME).write_text("llm: codex-cli\n", encoding="utf-8")

        assert load_settings().llm == "codex-cli"

    def test_missing_explicit_file(self, tmp_path):
        """An explicit path that does not exist is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML is a configuration error."""
        path = tmp_path / "config.yaml"
        path.write_text("epics: [1, 2\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_settings(path)

    def test_non_mapping(self, tmp_path):
        """A YAML list is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- epics\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_settings(path)

    def test_invalid_value(self, tmp_path):
        """Bad values surface as configuration errors."""
        path = tmp_path / "config.yaml"
        path.write_text("priority: urgent\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid configuration"):
            load_settings(path)
