"""Configuration for prd-breakdown."""

from .settings import CONFIG_FILE_NAME, Settings, find_config_file, load_settings

__all__ = ["CONFIG_FILE_NAME", "Settings", "find_config_file", "load_settings"]
