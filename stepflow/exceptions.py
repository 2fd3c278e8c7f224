"""Custom exception hierarchy for stepflow.

This module defines the exception hierarchy used throughout stepflow.
All framework exceptions inherit from StepflowError, allowing users
to catch all framework errors with a single except clause.

Exception Hierarchy:
    StepflowError (base)
    ├── WorkflowLoadError           # Document rejected at load time
    │   ├── ParseError              # Malformed YAML/JSON text
    │   ├── SchemaValidationError   # Structural schema violation
    │   └── SemanticValidationError # Cross-step invariant violation
    ├── WorkflowNotFoundError       # Unknown workflow name
    ├── InputValidationError        # Caller inputs rejected by input specs
    ├── StepExecutionError          # Step handler failure at run time
    │   ├── UnresolvedReferenceError
    │   ├── UnsupportedStepTypeError
    │   ├── UnsupportedLanguageError
    │   ├── ConditionEvaluationError
    │   └── SandboxError
    │       └── SandboxTimeoutError
    ├── CircularDependencyError     # Planner found no valid order
    └── RunCancelledError           # Run stopped by its cancellation token
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from stepflow.dsl.validation import ValidationResult


class StepflowError(Exception):
    """Base exception for all stepflow errors.

    Examples:
        Catch all framework errors:
            >>> try:
            ...     engine.run("daily_report", {})
            ... except StepflowError as e:
            ...     logger.error(f"Workflow error: {e}")
    """

    pass


class WorkflowLoadError(StepflowError):
    """A workflow document was rejected and not registered.

    Attributes:
        result: The full ValidationResult (every error and warning).
    """

    def __init__(self, message: str, result: ValidationResult | None = None):
        super().__init__(message)
        self.result = result


class ParseError(WorkflowLoadError):
    """The document text is not valid YAML/JSON.

    Attributes:
        line: 1-based line of the problem, when known.
        column: 1-based column of the problem, when known.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        result: ValidationResult | None = None,
    ):
        super().__init__(message, result=result)
        self.line = line
        self.column = column
        if line is not None:
            self.args = (f"{message} (line {line}, column {column})",)


class SchemaValidationError(WorkflowLoadError):
    """The document violates the structural workflow schema."""

    pass


class SemanticValidationError(WorkflowLoadError):
    """The document violates a cross-step invariant.

    Duplicate step ids, missing dependencies, dependency cycles, invalid
    references and invalid step configuration all end up here.
    """

    pass


class WorkflowNotFoundError(StepflowError):
    """No workflow is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Workflow not found: {name}")
        self.name = name


class InputValidationError(StepflowError):
    """Caller-supplied inputs do not satisfy the declared input specs.

    Attributes:
        field: Name of the offending input (optional).
    """

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class StepExecutionError(StepflowError):
    """Error raised by a step handler during a run.

    Handled by the step's error policy (fail, skip, retry, fallback).

    Attributes:
        step_id: ID of the step that failed (optional).

    Examples:
        >>> raise StepExecutionError("HTTP request failed", step_id="fetch")
    """

    def __init__(self, message: str, step_id: str = ""):
        super().__init__(message)
        self.message = message
        self.step_id = step_id
        if step_id:
            self.args = (f"{message} (step_id={step_id})",)


class UnresolvedReferenceError(StepExecutionError):
    """A ``${...}`` template names something absent from the run scope.

    Attributes:
        expression: The dotted path that could not be resolved.
    """

    def __init__(self, expression: str, message: str = "", step_id: str = ""):
        super().__init__(message or f"Unresolved reference: ${{{expression}}}", step_id=step_id)
        self.expression = expression


class UnsupportedStepTypeError(StepExecutionError):
    """The dispatcher has no handler for a step type."""

    def __init__(self, step_type: str, step_id: str = ""):
        super().__init__(f"Unsupported step type: {step_type}", step_id=step_id)
        self.step_type = step_type


class UnsupportedLanguageError(StepExecutionError):
    """A code step declares a language this engine cannot execute."""

    def __init__(self, language: str, step_id: str = ""):
        super().__init__(f"Unsupported code language: {language}", step_id=step_id)
        self.language = language


class ConditionEvaluationError(StepExecutionError):
    """A condition expression is invalid or uses forbidden operations."""

    pass


class SandboxError(StepExecutionError):
    """Sandboxed code failed to run or raised inside ``main``.

    Attributes:
        logs: Log lines the code emitted before failing.
    """

    def __init__(self, message: str, step_id: str = "", logs: list | None = None):
        super().__init__(message, step_id=step_id)
        self.logs = list(logs or [])


class SandboxTimeoutError(SandboxError):
    """Sandboxed code exceeded its wall-clock limit."""

    pass


class CircularDependencyError(StepflowError):
    """No valid execution order exists for the step graph.

    Attributes:
        step_ids: Steps that could never become ready.
    """

    def __init__(self, step_ids: Iterable[str] = ()):
        self.step_ids = list(step_ids)
        detail = f": {', '.join(self.step_ids)}" if self.step_ids else ""
        super().__init__(f"Circular dependency detected in workflow steps{detail}")


class RunCancelledError(StepflowError):
    """The run was cancelled through its CancellationToken."""

    pass


__all__ = [
    "StepflowError",
    "WorkflowLoadError",
    "ParseError",
    "SchemaValidationError",
    "SemanticValidationError",
    "WorkflowNotFoundError",
    "InputValidationError",
    "StepExecutionError",
    "UnresolvedReferenceError",
    "UnsupportedStepTypeError",
    "UnsupportedLanguageError",
    "ConditionEvaluationError",
    "SandboxError",
    "SandboxTimeoutError",
    "CircularDependencyError",
    "RunCancelledError",
]
