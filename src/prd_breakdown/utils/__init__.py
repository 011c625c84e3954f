"""Utility modules for prd-breakdown."""

from .logger import console, get_logger, log_operation, setup_logging

__all__ = ["console", "get_logger", "log_operation", "setup_logging"]
