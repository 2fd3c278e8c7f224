"""
Status enums for stepflow validation and execution.

Provides type-safe status values instead of magic strings.
"""

from enum import Enum


class StepType(str, Enum):
    """Kinds of steps a workflow document may declare.

    ``loop`` and ``parallel`` are accepted by the document format but have no
    execution handler.
    """

    START = "start"
    END = "end"
    CODE = "code"
    LLM = "llm"
    HTTP = "http"
    CONDITION = "condition"
    LOOP = "loop"
    PARALLEL = "parallel"


class ErrorPolicy(str, Enum):
    """Per-step failure policy (``error_handling.on_error``)."""

    FAIL = "fail"
    SKIP = "skip"
    RETRY = "retry"
    FALLBACK = "fallback"


class StepStatus(str, Enum):
    """Outcome of a single step within a run.

    Examples:
        >>> from stepflow.status import StepStatus
        >>> if result.step_results["fetch"].status == StepStatus.COMPLETED:
        ...     print("fetch finished")
    """

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # Pruned by a condition branch


class Severity(str, Enum):
    """Severity of a validation error."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class IssueKind(str, Enum):
    """Whether a validation issue blocks loading."""

    ERROR = "error"
    WARNING = "warning"
