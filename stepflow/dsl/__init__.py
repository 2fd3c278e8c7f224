"""
Workflow document format: parsing, models and validation.
"""

from stepflow.dsl.models import WorkflowDefinition, parse_workflow
from stepflow.dsl.parser import parse_document, read_document
from stepflow.dsl.validation import ValidationIssue, ValidationResult, validate_data, validate_document

__all__ = [
    "WorkflowDefinition",
    "ValidationIssue",
    "ValidationResult",
    "parse_document",
    "parse_workflow",
    "read_document",
    "validate_data",
    "validate_document",
]
