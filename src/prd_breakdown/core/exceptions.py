"""
Custom exception hierarchy for prd-breakdown.
Provides structured errors that carry enough context to name the failing
stage and unit of work.
"""

from typing import Any, Optional


class PRDBreakdownError(Exception):
    """Base exception for all prd-breakdown errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON output."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PRDBreakdownError):
    """Error in application configuration or provider selection."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)


# =============================================================================
# Generation Errors
# =============================================================================


class CapabilityError(PRDBreakdownError):
    """The generation backend itself failed (process, network or auth)."""

    def __init__(
        self,
        message: str,
        capability: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if capability:
            details["capability"] = capability
        super().__init__(message=message, code="CAPABILITY_ERROR", details=details)
        self.capability = capability


class ParseError(PRDBreakdownError):
    """Generator output held no extractable or decodable JSON object."""

    def __init__(self, message: str, preview: str = "") -> None:
        details = {"preview": preview} if preview else {}
        super().__init__(message=message, code="PARSE_ERROR", details=details)
        self.preview = preview


class StructuralError(PRDBreakdownError):
    """A hierarchy violates a structural invariant."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(
            message=f"validation error: {field} - {message}",
            code="STRUCTURAL_ERROR",
            details={"field": field, "reason": message},
        )
        self.field = field
        self.reason = message


class StageError(PRDBreakdownError):
    """A multi-stage run failed at a named stage and unit of work."""

    STAGE_NUMBERS = {"epics": 1, "tasks": 2, "subtasks": 3}

    def __init__(
        self,
        stage: str,
        cause: Exception,
        unit_id: Optional[str] = None,
    ) -> None:
        number = self.STAGE_NUMBERS.get(stage, 0)
        where = f" at {unit_id}" if unit_id else ""
        super().__init__(
            message=f"stage {number} ({stage}) failed{where}: {cause}",
            code="STAGE_ERROR",
            details={"stage": stage, "unit_id": unit_id, "cause": type(cause).__name__},
        )
        self.stage = stage
        self.unit_id = unit_id
        self.cause = cause


# =============================================================================
# Post-pass Errors
# =============================================================================


class MergeValidationError(PRDBreakdownError):
    """The reviewer merge produced a tree that fails validation."""

    def __init__(self, cause: StructuralError) -> None:
        super().__init__(
            message=str(cause),
            code="MERGE_VALIDATION_ERROR",
            details=dict(cause.details),
        )
        self.cause = cause


class ReviewError(PRDBreakdownError):
    """The structural review call failed or returned unusable output."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, code="REVIEW_ERROR", details=details)


class AdvisoryError(PRDBreakdownError):
    """The gap validation pass failed. Never fatal to a run."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, code="ADVISORY_ERROR", details=details)


# =============================================================================
# Persistence and Delivery Errors
# =============================================================================


class CheckpointError(PRDBreakdownError):
    """A checkpoint file could not be written or loaded."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        details = {"path": path} if path else {}
        super().__init__(message=message, code="CHECKPOINT_ERROR", details=details)
        self.path = path


class SinkError(PRDBreakdownError):
    """Handing the hierarchy to a sink failed."""

    def __init__(
        self,
        message: str,
        sink: str = "",
        checkpoint_path: Optional[str] = None,
    ) -> None:
        details: dict[str, Any] = {"sink": sink}
        if checkpoint_path:
            details["checkpoint_path"] = checkpoint_path
        super().__init__(message=message, code="SINK_ERROR", details=details)
        self.sink = sink
        self.checkpoint_path = checkpoint_path
