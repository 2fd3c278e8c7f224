"""
Validation result types and the validation pipeline.

The pipeline is: parse -> schema -> semantics -> best practices. Schema errors
stop the pipeline before semantic checks; warnings never affect validity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stepflow.exceptions import ParseError
from stepflow.status import IssueKind, Severity

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"


@dataclass
class ValidationIssue:
    """A single validation finding (error or warning)."""

    kind: IssueKind
    code: str
    message: str
    path: str | None = None
    severity: Severity | None = None
    suggestion: str | None = None
    line: int | None = None
    column: int | None = None

    @property
    def is_error(self) -> bool:
        return self.kind == IssueKind.ERROR

    def __str__(self) -> str:
        location = f" at {self.path}" if self.path else ""
        return f"[{self.code}] {self.message}{location}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping unset optional fields."""
        data: dict[str, Any] = {
            "type": self.kind.value,
            "code": self.code,
            "message": self.message,
        }
        if self.path is not None:
            data["path"] = self.path
        if self.severity is not None:
            data["severity"] = self.severity.value
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        if self.line is not None:
            data["line"] = self.line
            data["column"] = self.column
        return data


def error(
    code: str,
    message: str,
    path: str | None = None,
    severity: Severity = Severity.HIGH,
    line: int | None = None,
    column: int | None = None,
) -> ValidationIssue:
    """Build an error issue."""
    return ValidationIssue(
        IssueKind.ERROR, code, message, path=path, severity=severity, line=line, column=column
    )


def warning(
    code: str, message: str, path: str | None = None, suggestion: str | None = None
) -> ValidationIssue:
    """Build a warning issue."""
    return ValidationIssue(IssueKind.WARNING, code, message, path=path, suggestion=suggestion)


@dataclass
class ValidationResult:
    """Combined outcome of all validation stages.

    ``valid`` is True iff there are no errors; warnings never block validity.
    """

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def extend(self, issues: list[ValidationIssue]) -> None:
        """Sort issues into errors and warnings."""
        for issue in issues:
            if issue.is_error:
                self.errors.append(issue)
            else:
                self.warnings.append(issue)

    def has_code(self, code: str) -> bool:
        return any(issue.code == code for issue in self.errors + self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "metadata": self.metadata,
        }


def validate_data(data: Any) -> ValidationResult:
    """Validate already-parsed document data.

    Args:
        data: Parsed document.

    Returns:
        ValidationResult with schema, semantic and best-practice findings.
    """
    from stepflow.dsl.schema import validate_schema
    from stepflow.dsl.semantic import lint_best_practices, validate_semantics

    result = ValidationResult()
    schema_issues = validate_schema(data)
    result.extend(schema_issues)

    if not schema_issues:
        result.extend(validate_semantics(data))
        result.extend(lint_best_practices(data))

    workflow_name = None
    if isinstance(data, dict) and isinstance(data.get("metadata"), dict):
        workflow_name = data["metadata"].get("name")
    result.metadata = _result_metadata(workflow_name)
    return result


def validate_document(text: str) -> tuple[ValidationResult, Any]:
    """Parse and validate document text without raising.

    Returns:
        Tuple of (ValidationResult, parsed data or None when parsing failed).
    """
    from stepflow.dsl.parser import parse_document

    try:
        data = parse_document(text)
    except ParseError as e:
        logger.debug(f"Workflow document failed to parse: {e}")
        return parse_error_result(e), None

    return validate_data(data), data


def _result_metadata(workflow_name: str | None) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "validated_at": datetime.now().isoformat(),
        "schema_version": SCHEMA_VERSION,
    }
    if workflow_name is not None:
        metadata["workflow_name"] = workflow_name
    return metadata


def parse_error_result(e: ParseError) -> ValidationResult:
    """ValidationResult holding a single critical YAML_PARSE_ERROR."""
    return ValidationResult(
        errors=[
            error(
                "YAML_PARSE_ERROR",
                str(e),
                severity=Severity.CRITICAL,
                line=e.line,
                column=e.column,
            )
        ],
        metadata=_result_metadata(None),
    )
