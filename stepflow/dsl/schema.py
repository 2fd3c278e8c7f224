"""
Structural schema validation for workflow documents.

Validates raw parsed data against a fixed JSON schema and reports every
violation in one pass.
"""

from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from stepflow.dsl.validation import ValidationIssue, error
from stepflow.status import Severity

IDENTIFIER_PATTERN = r"^[a-zA-Z][a-zA-Z0-9_]*$"
VALUE_TYPES = ["string", "number", "integer", "boolean", "array", "object"]
STEP_TYPES = ["start", "end", "code", "llm", "http", "condition", "loop", "parallel"]

WORKFLOW_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["metadata", "inputs", "workflow", "outputs"],
    "properties": {
        "metadata": {
            "type": "object",
            "required": ["name", "description", "version"],
            "properties": {
                "name": {
                    "type": "string",
                    "pattern": r"^[a-zA-Z][a-zA-Z0-9_-]*$",
                    "minLength": 3,
                    "maxLength": 100,
                },
                "description": {"type": "string", "maxLength": 500},
                "version": {"type": "string", "pattern": r"^\d+\.\d+\.\d+$"},
                "author": {"type": "string", "maxLength": 100},
                "tags": {
                    "type": "array",
                    "items": {"type": "string", "maxLength": 50},
                    "maxItems": 10,
                },
            },
            "additionalProperties": True,
        },
        "inputs": {
            "type": "object",
            "patternProperties": {
                IDENTIFIER_PATTERN: {
                    "type": "object",
                    "required": ["type"],
                    "properties": {
                        "type": {"type": "string", "enum": VALUE_TYPES},
                        "required": {"type": "boolean"},
                        "description": {"type": "string", "maxLength": 200},
                        "validation": {"type": "object"},
                    },
                    "additionalProperties": True,
                }
            },
            "additionalProperties": False,
        },
        "workflow": {
            "type": "object",
            "required": ["steps"],
            "properties": {
                "steps": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "required": ["id", "type"],
                        "properties": {
                            "id": {"type": "string", "pattern": IDENTIFIER_PATTERN},
                            "type": {"type": "string", "enum": STEP_TYPES},
                            "name": {"type": "string", "maxLength": 100},
                            "description": {"type": "string", "maxLength": 200},
                            "depends_on": {
                                "type": "array",
                                "items": {"type": "string", "pattern": IDENTIFIER_PATTERN},
                            },
                            "config": {"type": "object"},
                            "outputs": {"type": "object"},
                            "error_handling": {
                                "type": "object",
                                "properties": {
                                    "on_error": {
                                        "type": "string",
                                        "enum": ["fail", "skip", "retry", "fallback"],
                                    },
                                    "retry_count": {"type": "integer", "minimum": 1, "maximum": 10},
                                    "retry_delay": {"type": "number", "minimum": 0},
                                    "fallback_step": {
                                        "type": "string",
                                        "pattern": IDENTIFIER_PATTERN,
                                    },
                                },
                                "additionalProperties": True,
                            },
                        },
                        "additionalProperties": True,
                    },
                }
            },
        },
        "outputs": {
            "type": "object",
            "patternProperties": {
                IDENTIFIER_PATTERN: {
                    "type": "object",
                    "required": ["source"],
                    "properties": {
                        "source": {"type": "string"},
                        "type": {"type": "string", "enum": VALUE_TYPES},
                        "description": {"type": "string", "maxLength": 200},
                    },
                    "additionalProperties": True,
                }
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

_CRITICAL_KEYWORDS = {"required", "type", "additionalProperties"}
_HIGH_KEYWORDS = {"pattern", "format", "enum"}

_validator = Draft202012Validator(WORKFLOW_SCHEMA)


def get_error_severity(keyword: str) -> Severity:
    """Map a violated schema keyword to an error severity."""
    if keyword in _CRITICAL_KEYWORDS:
        return Severity.CRITICAL
    if keyword in _HIGH_KEYWORDS:
        return Severity.HIGH
    return Severity.MEDIUM


def validate_schema(data: Any) -> List[ValidationIssue]:
    """Validate a parsed document against the workflow schema.

    Args:
        data: Parsed document.

    Returns:
        One error per schema violation (empty when the document conforms).
    """
    issues: List[ValidationIssue] = []
    violations = sorted(_validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    for violation in violations:
        path = ".".join(str(part) for part in violation.absolute_path) or "$"
        issues.append(
            error(
                "SCHEMA_VALIDATION_ERROR",
                f"Schema validation failed at {path}: {violation.message}",
                path=path,
                severity=get_error_severity(str(violation.validator)),
            )
        )
    return issues
