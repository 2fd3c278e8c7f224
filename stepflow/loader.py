"""
Workflow loader.

Turns document text into a registered, immutable WorkflowDefinition:
parse -> schema validation -> semantic validation -> register. Any error
aborts before registration, so a rejected document is never executable.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from stepflow.dsl.models import WorkflowDefinition, parse_workflow
from stepflow.dsl.parser import parse_document, read_document
from stepflow.dsl.validation import ValidationResult, error, parse_error_result, validate_data
from stepflow.exceptions import ParseError, SchemaValidationError, SemanticValidationError
from stepflow.registry import WorkflowRegistry, get_workflow_registry
from stepflow.status import Severity

logger = logging.getLogger(__name__)


def _summarize(result: ValidationResult) -> str:
    first = result.errors[0]
    more = f" (+{len(result.errors) - 1} more)" if len(result.errors) > 1 else ""
    return f"Workflow validation failed: {first}{more}"


class WorkflowLoader:
    """Validates workflow documents and registers them.

    Attributes:
        registry: Where accepted definitions are registered.
        last_result: ValidationResult of the most recent load (warnings of a
            successful load, every finding of a failed one).

    Examples:
        >>> loader = WorkflowLoader()
        >>> definition = loader.load(Path("flows/report.yaml").read_text())
        >>> for warning in loader.last_result.warnings:
        ...     print(warning)
    """

    def __init__(self, registry: WorkflowRegistry | None = None):
        self.registry = registry or get_workflow_registry()
        self.last_result: ValidationResult | None = None

    def load(self, text: str) -> WorkflowDefinition:
        """Validate ``text`` and register the resulting definition.

        Returns:
            The registered WorkflowDefinition.

        Raises:
            ParseError: The text is not well-formed YAML/JSON.
            SchemaValidationError: Structural schema violations.
            SemanticValidationError: Cross-step invariant violations.
        """
        definition, result = self.load_with_result(text)
        return definition

    def load_with_result(self, text: str) -> tuple[WorkflowDefinition, ValidationResult]:
        """Like ``load`` but also returns the ValidationResult (warnings)."""
        try:
            data = parse_document(text)
        except ParseError as e:
            e.result = parse_error_result(e)
            self.last_result = e.result
            logger.warning(f"Rejected workflow document: {e}")
            raise

        result = validate_data(data)
        self.last_result = result

        if not result.valid:
            message = _summarize(result)
            logger.warning(f"Rejected workflow document: {message}")
            if result.has_code("SCHEMA_VALIDATION_ERROR"):
                raise SchemaValidationError(message, result=result)
            raise SemanticValidationError(message, result=result)

        try:
            definition = parse_workflow(data)
        except PydanticValidationError as e:
            result.errors.append(
                error("SCHEMA_VALIDATION_ERROR", f"Invalid workflow definition: {e}", severity=Severity.CRITICAL)
            )
            raise SchemaValidationError(_summarize(result), result=result) from e

        self.registry.register(definition)
        logger.info(
            f"Loaded workflow {definition.name} v{definition.metadata.version} "
            f"({len(definition.steps)} steps, {len(result.warnings)} warnings)"
        )
        for issue in result.warnings:
            logger.debug(f"Workflow {definition.name}: {issue}")
        return definition, result

    def load_file(self, path: str | Path) -> WorkflowDefinition:
        """Read a UTF-8 document from disk and load it.

        Raises:
            ParseError: The file cannot be read or parsed.
        """
        try:
            text = read_document(path)
        except ParseError as e:
            e.result = parse_error_result(e)
            self.last_result = e.result
            raise
        return self.load(text)
