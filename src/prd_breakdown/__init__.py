"""prd-breakdown: decompose product requirements documents into validated
epic, task and subtask hierarchies."""

__version__ = "0.1.0"

from .core.exceptions import PRDBreakdownError
from .core.pipeline import DecompositionPipeline, PipelineResult, Strategy
from .models.hierarchy import Epic, ParseConfig, ParseResponse, ProjectContext, Subtask, Task

__all__ = [
    "DecompositionPipeline",
    "Epic",
    "ParseConfig",
    "ParseResponse",
    "PipelineResult",
    "PRDBreakdownError",
    "ProjectContext",
    "Strategy",
    "Subtask",
    "Task",
    "__version__",
]
