"""
Template expression resolution.

A template string holds zero or more ``${path}`` tokens, where ``path`` is a
dot-separated chain. The first segment selects the namespace:

- ``sys``: runtime metadata (current_time, workflow_name, execution_id)
- a declared input name: the run's validated inputs
- ``input``: explicit input namespace (``${input.topic}``)
- anything else: a step id, resolved against accumulated step results

Remaining segments walk mapping keys (or integer list indexes).
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, List

from stepflow.exceptions import UnresolvedReferenceError

if TYPE_CHECKING:
    from stepflow.flow.context import ExecutionContext

TOKEN_PATTERN = re.compile(r"\$\{([^}]+)\}")

SYS_NAMESPACE = "sys"
INPUT_NAMESPACE = "input"


def find_references(text: Any) -> List[str]:
    """Return the paths of every ``${...}`` token in ``text`` (stripped)."""
    if not isinstance(text, str):
        return []
    return [match.strip() for match in TOKEN_PATTERN.findall(text)]


def collect_strings(value: Any) -> List[str]:
    """Every string nested anywhere inside ``value``."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        found: List[str] = []
        for item in value.values():
            found.extend(collect_strings(item))
        return found
    if isinstance(value, (list, tuple)):
        found = []
        for item in value:
            found.extend(collect_strings(item))
        return found
    return []


def mask_tokens(text: str, placeholder: str = "placeholder") -> str:
    """Replace every token with a fixed placeholder (for syntax checks)."""
    return TOKEN_PATTERN.sub(placeholder, text)


def stringify(value: Any) -> str:
    """Render a value for splicing into a larger string."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def resolve_path(path: str, context: ExecutionContext) -> Any:
    """Resolve a dotted path against the run scope.

    Args:
        path: Path such as ``fetch.data.items`` or ``sys.execution_id``.
        context: Current execution context.

    Returns:
        The referenced value with its original type.

    Raises:
        UnresolvedReferenceError: If the namespace or any segment is missing.
    """
    parts = [part.strip() for part in path.strip().split(".")]
    if not parts or not parts[0]:
        raise UnresolvedReferenceError(path, f"Empty reference: ${{{path}}}")

    head, rest = parts[0], parts[1:]
    if head == SYS_NAMESPACE:
        current: Any = context.sys
    elif head in context.declared_inputs:
        if head not in context.inputs:
            raise UnresolvedReferenceError(path, f"Input '{head}' was not provided: ${{{path}}}")
        current = context.inputs[head]
    elif head == INPUT_NAMESPACE:
        current = context.inputs
    elif head in context.step_results:
        current = context.step_results[head]
    else:
        raise UnresolvedReferenceError(
            path, f"Unresolved reference: ${{{path}}} (no result for '{head}')"
        )

    for part in rest:
        current = _lookup(current, part, path)
    return current


def _lookup(current: Any, part: str, path: str) -> Any:
    if isinstance(current, dict):
        if part in current:
            return current[part]
    elif isinstance(current, (list, tuple)):
        try:
            return current[int(part)]
        except (ValueError, IndexError):
            pass
    raise UnresolvedReferenceError(path, f"Path not found: {path}")


def resolve_template(template: Any, context: ExecutionContext) -> Any:
    """Resolve every token in a template string.

    A template that is exactly one token keeps the referenced value's type;
    tokens embedded in surrounding text are stringified before splicing.
    Non-string templates are returned unchanged.
    """
    if not isinstance(template, str):
        return template

    whole = TOKEN_PATTERN.fullmatch(template.strip())
    if whole is not None and template.strip() == template:
        return resolve_path(whole.group(1), context)

    return TOKEN_PATTERN.sub(lambda m: stringify(resolve_path(m.group(1), context)), template)


def resolve_value(value: Any, context: ExecutionContext) -> Any:
    """Resolve templates recursively inside mappings and lists."""
    if isinstance(value, str):
        return resolve_template(value, context)
    if isinstance(value, dict):
        return {key: resolve_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, context) for item in value]
    return value
