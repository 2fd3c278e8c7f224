"""
Stepflow - declarative YAML workflow engine

Loads workflow documents, validates them (schema, semantics, best practices)
and runs them step by step with sandboxed code, LLM, HTTP and branch steps.
"""

from stepflow.config import EngineConfig, get_config, reset_config
from stepflow.dsl.models import StepSpec, WorkflowDefinition
from stepflow.dsl.validation import ValidationIssue, ValidationResult
from stepflow.engine import WorkflowEngine
from stepflow.exceptions import (
    CircularDependencyError,
    InputValidationError,
    ParseError,
    RunCancelledError,
    SchemaValidationError,
    SemanticValidationError,
    StepExecutionError,
    StepflowError,
    UnresolvedReferenceError,
    WorkflowLoadError,
    WorkflowNotFoundError,
)
from stepflow.flow.context import CancellationToken, ExecutionContext
from stepflow.flow.result import ExecutionResult, StepResult
from stepflow.loader import WorkflowLoader
from stepflow.registry import WorkflowRegistry, get_workflow_registry
from stepflow.status import ErrorPolicy, StepStatus, StepType
from stepflow.steps import StepDispatcher

__all__ = [
    # Engine
    "WorkflowEngine",
    "WorkflowLoader",
    "WorkflowRegistry",
    "get_workflow_registry",
    "StepDispatcher",
    # Models and results
    "WorkflowDefinition",
    "StepSpec",
    "ValidationIssue",
    "ValidationResult",
    "ExecutionContext",
    "ExecutionResult",
    "StepResult",
    "CancellationToken",
    # Status
    "StepType",
    "StepStatus",
    "ErrorPolicy",
    # Config
    "EngineConfig",
    "get_config",
    "reset_config",
    # Exceptions
    "StepflowError",
    "WorkflowLoadError",
    "ParseError",
    "SchemaValidationError",
    "SemanticValidationError",
    "WorkflowNotFoundError",
    "InputValidationError",
    "StepExecutionError",
    "UnresolvedReferenceError",
    "CircularDependencyError",
    "RunCancelledError",
]

__version__ = "0.1.0"
