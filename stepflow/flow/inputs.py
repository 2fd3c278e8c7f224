"""
Validation of caller-supplied run inputs against the declared input specs.
"""

import re
from typing import Any, Dict, Mapping

from stepflow.dsl.models import InputSpec
from stepflow.exceptions import InputValidationError


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def check_type(name: str, value: Any, expected: str) -> Any:
    """Check ``value`` against a declared type and return the normalized value.

    Booleans are never numbers. An integral float is accepted (and converted)
    for ``integer``; any integer is a valid ``number``.
    """
    actual = _type_name(value)
    if expected == "integer":
        if actual == "integer":
            return value
        if actual == "number" and float(value).is_integer():
            return int(value)
        raise InputValidationError(f"Input {name} must be an integer, got {actual}", field=name)
    if expected == "number" and actual in ("integer", "number"):
        return value
    if expected == "array" and actual == "array":
        return list(value)
    if expected != actual:
        raise InputValidationError(
            f"Input {name} must be of type {expected}, got {actual}", field=name
        )
    return value


def check_rules(name: str, value: Any, spec: InputSpec) -> None:
    """Apply pattern/length/range/enum rules."""
    rules = spec.validation
    if rules is None:
        return

    if isinstance(value, str):
        if rules.pattern is not None and not re.search(rules.pattern, value):
            raise InputValidationError(f"Input {name} does not match required pattern", field=name)
        if rules.min_length is not None and len(value) < rules.min_length:
            raise InputValidationError(
                f"Input {name} is too short (min: {rules.min_length})", field=name
            )
        if rules.max_length is not None and len(value) > rules.max_length:
            raise InputValidationError(
                f"Input {name} is too long (max: {rules.max_length})", field=name
            )

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if rules.minimum is not None and value < rules.minimum:
            raise InputValidationError(
                f"Input {name} is too small (min: {rules.minimum})", field=name
            )
        if rules.maximum is not None and value > rules.maximum:
            raise InputValidationError(
                f"Input {name} is too large (max: {rules.maximum})", field=name
            )

    if rules.enum is not None and value not in rules.enum:
        allowed = ", ".join(str(option) for option in rules.enum)
        raise InputValidationError(f"Input {name} must be one of: {allowed}", field=name)


def process_inputs(declared: Mapping[str, InputSpec], inputs: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate and default run inputs.

    Args:
        declared: Input specs from the workflow definition.
        inputs: Values supplied by the caller. Undeclared keys are dropped.

    Returns:
        Declared inputs that have a value, after defaults are applied.

    Raises:
        InputValidationError: A required input is missing, or a value has the
            wrong type or breaks a validation rule.
    """
    processed: Dict[str, Any] = {}
    for name, spec in declared.items():
        value = inputs.get(name)
        if value is None:
            if spec.has_default:
                processed[name] = spec.default
            elif spec.required:
                raise InputValidationError(f"Required input missing: {name}", field=name)
            continue

        value = check_type(name, value, spec.type)
        check_rules(name, value, spec)
        processed[name] = value
    return processed
