"""Tests for the stepflow exception hierarchy."""

from stepflow.dsl.validation import ValidationResult
from stepflow.exceptions import (
    CircularDependencyError,
    ConditionEvaluationError,
    InputValidationError,
    ParseError,
    RunCancelledError,
    SandboxError,
    SandboxTimeoutError,
    SchemaValidationError,
    SemanticValidationError,
    StepExecutionError,
    StepflowError,
    UnresolvedReferenceError,
    UnsupportedLanguageError,
    UnsupportedStepTypeError,
    WorkflowLoadError,
    WorkflowNotFoundError,
)


class TestStepflowError:
    """Tests for base StepflowError."""

    def test_every_error_is_a_stepflow_error(self):
        """All framework exceptions share one base class."""
        for cls in (
            WorkflowLoadError,
            WorkflowNotFoundError,
            InputValidationError,
            StepExecutionError,
            CircularDependencyError,
            RunCancelledError,
        ):
            assert issubclass(cls, StepflowError)

    def test_load_errors(self):
        """Parse, schema and semantic errors are load errors."""
        for cls in (ParseError, SchemaValidationError, SemanticValidationError):
            assert issubclass(cls, WorkflowLoadError)

    def test_step_errors(self):
        """Run-time step failures share StepExecutionError."""
        for cls in (
            UnresolvedReferenceError,
            UnsupportedStepTypeError,
            UnsupportedLanguageError,
            ConditionEvaluationError,
            SandboxError,
            SandboxTimeoutError,
        ):
            assert issubclass(cls, StepExecutionError)


class TestWorkflowLoadError:
    def test_carries_validation_result(self):
        result = ValidationResult()
        exc = SemanticValidationError("Workflow validation failed", result=result)
        assert exc.result is result

    def test_parse_error_position(self):
        """ParseError should include line and column when known."""
        exc = ParseError("YAML parsing failed: bad indent", line=3, column=5)
        assert str(exc) == "YAML parsing failed: bad indent (line 3, column 5)"
        assert exc.line == 3
        assert exc.column == 5

    def test_parse_error_without_position(self):
        exc = ParseError("YAML parsing failed")
        assert str(exc) == "YAML parsing failed"
        assert exc.line is None


class TestStepExecutionError:
    def test_with_step_id(self):
        """StepExecutionError should support step_id context."""
        exc = StepExecutionError("HTTP request failed", step_id="fetch")
        assert str(exc) == "HTTP request failed (step_id=fetch)"
        assert exc.message == "HTTP request failed"
        assert exc.step_id == "fetch"

    def test_without_step_id(self):
        exc = StepExecutionError("HTTP request failed")
        assert str(exc) == "HTTP request failed"
        assert exc.step_id == ""

    def test_unresolved_reference_default_message(self):
        exc = UnresolvedReferenceError("fetch.data")
        assert exc.expression == "fetch.data"
        assert "${fetch.data}" in str(exc)

    def test_unsupported_language(self):
        exc = UnsupportedLanguageError("ruby", step_id="calc")
        assert exc.language == "ruby"
        assert "Unsupported code language: ruby" in str(exc)

    def test_sandbox_error_keeps_logs(self):
        exc = SandboxTimeoutError("timed out", step_id="calc", logs=[{"level": "info", "message": "hi"}])
        assert exc.logs == [{"level": "info", "message": "hi"}]


class TestOtherErrors:
    def test_workflow_not_found(self):
        exc = WorkflowNotFoundError("daily_report")
        assert exc.name == "daily_report"
        assert str(exc) == "Workflow not found: daily_report"

    def test_input_validation_field(self):
        exc = InputValidationError("Required input missing: x", field="x")
        assert exc.field == "x"

    def test_circular_dependency_lists_steps(self):
        exc = CircularDependencyError(["a", "b"])
        assert exc.step_ids == ["a", "b"]
        assert str(exc) == "Circular dependency detected in workflow steps: a, b"

    def test_chaining(self):
        """Errors should support exception chaining."""
        original = ValueError("original error")
        try:
            raise StepExecutionError("Wrapper error") from original
        except StepExecutionError as exc:
            assert exc.__cause__ is original
