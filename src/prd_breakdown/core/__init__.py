"""Core decomposition logic.

Import generators and the pipeline from their modules; this package only
re-exports the error taxonomy so the models can depend on it.
"""

from .exceptions import (
    AdvisoryError,
    CapabilityError,
    CheckpointError,
    ConfigurationError,
    MergeValidationError,
    ParseError,
    PRDBreakdownError,
    ReviewError,
    SinkError,
    StageError,
    StructuralError,
)

__all__ = [
    "AdvisoryError",
    "CapabilityError",
    "CheckpointError",
    "ConfigurationError",
    "MergeValidationError",
    "ParseError",
    "PRDBreakdownError",
    "ReviewError",
    "SinkError",
    "StageError",
    "StructuralError",
]
