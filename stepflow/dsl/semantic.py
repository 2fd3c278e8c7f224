"""
Semantic validation for workflow documents.

Checks cross-step invariants that a structural schema cannot express:
unique step ids, resolvable dependencies, absence of cycles, reachability
from start steps, per-type configuration and template references.

Both entry points take document data that already passed the schema check.
"""

import re
from collections import deque
from typing import Any, Dict, List, Optional, Set

import httpx

from stepflow.dsl.validation import ValidationIssue, error, warning
from stepflow.flow.expressions import collect_strings, find_references, mask_tokens
from stepflow.flow.planner import (
    ancestors,
    build_dependency_graph,
    build_dependents_graph,
    detect_cycles,
)
from stepflow.status import Severity, StepType

DECLARED_LANGUAGES = ("python3", "javascript", "bash")
EXECUTABLE_LANGUAGES = ("python3",)
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

MAX_CODE_LENGTH = 5000
MIN_PROMPT_LENGTH = 20
MAX_PROMPT_LENGTH = 8000
TEMPERATURE_RANGE = (0, 2)
TOKEN_LIMIT_RANGE = (1, 4000)
TIMEOUT_RANGE_MS = (1000, 300000)

MAX_STEPS = 20
MAX_INPUTS = 15
MIN_DESCRIPTION_LENGTH = 20
WORKFLOW_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class _DocumentView:
    """Lookup tables shared by the individual checks."""

    def __init__(self, data: Dict[str, Any]):
        self.steps: List[Dict[str, Any]] = list(data["workflow"]["steps"])
        self.inputs: Dict[str, Any] = dict(data.get("inputs") or {})
        self.outputs: Dict[str, Any] = dict(data.get("outputs") or {})
        self.step_ids: Set[str] = {step["id"] for step in self.steps}
        self.dependencies = build_dependency_graph(self.steps)
        self.dependents = build_dependents_graph(self.dependencies)


def validate_semantics(data: Dict[str, Any]) -> List[ValidationIssue]:
    """Run every semantic check over a schema-valid document.

    Args:
        data: Parsed document that passed ``validate_schema``.

    Returns:
        Errors and warnings in check order.
    """
    view = _DocumentView(data)
    issues: List[ValidationIssue] = []

    issues.extend(_check_duplicate_ids(view))
    issues.extend(_check_dependencies_exist(view))
    issues.extend(_check_cycles(view))
    issues.extend(_check_flow_shape(view))
    issues.extend(_check_reachability(view))
    issues.extend(_check_inputs(view))

    for index, step in enumerate(view.steps):
        issues.extend(_check_step(step, f"workflow.steps.{index}", view))

    issues.extend(_check_outputs(view))
    issues.extend(_check_references(view))
    return issues


def _check_inputs(view: _DocumentView) -> List[ValidationIssue]:
    issues = []
    for name, spec in view.inputs.items():
        rules = spec.get("validation") or {}
        if "pattern" not in rules:
            continue
        pattern = rules["pattern"]
        try:
            re.compile(pattern)
        except (re.error, TypeError) as e:
            issues.append(
                error(
                    "INVALID_INPUT_PATTERN",
                    f"Input {name} has invalid validation pattern: {e}",
                    path=f"inputs.{name}.validation.pattern",
                )
            )
    return issues


def _check_duplicate_ids(view: _DocumentView) -> List[ValidationIssue]:
    issues = []
    seen: Set[str] = set()
    for index, step in enumerate(view.steps):
        step_id = step["id"]
        if step_id in seen:
            issues.append(
                error(
                    "DUPLICATE_STEP_ID",
                    f"Duplicate step ID found: {step_id}",
                    path=f"workflow.steps.{index}.id",
                    severity=Severity.CRITICAL,
                )
            )
        seen.add(step_id)
    return issues


def _check_dependencies_exist(view: _DocumentView) -> List[ValidationIssue]:
    issues = []
    for index, step in enumerate(view.steps):
        for dep_index, dep_id in enumerate(step.get("depends_on") or []):
            if dep_id not in view.step_ids:
                issues.append(
                    error(
                        "MISSING_DEPENDENCY",
                        f"Step {step['id']} depends on non-existent step: {dep_id}",
                        path=f"workflow.steps.{index}.depends_on.{dep_index}",
                    )
                )
    return issues


def _check_cycles(view: _DocumentView) -> List[ValidationIssue]:
    issues = []
    for cycle in detect_cycles(view.dependencies):
        issues.append(
            error(
                "CIRCULAR_DEPENDENCY",
                f"Circular dependency detected: {' -> '.join(cycle)}",
                path="workflow.steps",
                severity=Severity.CRITICAL,
            )
        )
    return issues


def _check_flow_shape(view: _DocumentView) -> List[ValidationIssue]:
    """Start/end step counts."""
    issues = []
    start_count = sum(1 for step in view.steps if step["type"] == StepType.START.value)
    if start_count == 0:
        issues.append(
            warning(
                "NO_START_STEP",
                "Workflow has no start step",
                path="workflow.steps",
                suggestion="Add a step with type 'start' as the entry point",
            )
        )
    elif start_count > 1:
        issues.append(
            warning(
                "MULTIPLE_START_STEPS",
                "Workflow has multiple start steps",
                path="workflow.steps",
                suggestion="Consider using a single start step",
            )
        )

    if not any(step["type"] == StepType.END.value for step in view.steps):
        issues.append(
            warning(
                "NO_END_STEP",
                "Workflow has no end step",
                path="workflow.steps",
                suggestion="Add a step with type 'end' to mark completion",
            )
        )
    return issues


def _check_reachability(view: _DocumentView) -> List[ValidationIssue]:
    """BFS from start steps along dependent edges."""
    start_ids = [step["id"] for step in view.steps if step["type"] == StepType.START.value]
    if not start_ids:
        return []

    visited: Set[str] = set(start_ids)
    queue = deque(start_ids)
    while queue:
        current = queue.popleft()
        for dependent in view.dependents.get(current, ()):
            if dependent not in visited:
                visited.add(dependent)
                queue.append(dependent)

    issues = []
    reported: Set[str] = set()
    for index, step in enumerate(view.steps):
        step_id = step["id"]
        if step_id not in visited and step_id not in reported:
            reported.add(step_id)
            issues.append(
                warning(
                    "UNREACHABLE_STEP",
                    f"Step {step_id} is not reachable from start steps",
                    path=f"workflow.steps.{index}",
                    suggestion="Add a dependency chain from a start step or remove the step",
                )
            )
    return issues


def _check_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    step_type = step["type"]
    checker = _STEP_CHECKERS.get(step_type)
    issues = checker(step, path, view) if checker else []
    issues.extend(_check_error_handling(step, path, view))
    return issues


def _check_start_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    if step.get("depends_on"):
        return [
            warning(
                "START_STEP_DEPENDENCIES",
                f"Start step {step['id']} should not have dependencies",
                path=f"{path}.depends_on",
                suggestion="Remove dependencies from the start step",
            )
        ]
    return []


def _check_end_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    if not step.get("depends_on"):
        return [
            warning(
                "END_STEP_NO_DEPENDENCIES",
                f"End step {step['id']} has no dependencies",
                path=f"{path}.depends_on",
                suggestion="End steps usually depend on the final processing steps",
            )
        ]
    return []


def _missing_config(step: Dict[str, Any], label: str, path: str) -> ValidationIssue:
    return error(
        "MISSING_CONFIG",
        f"{label} step {step['id']} is missing configuration",
        path=f"{path}.config",
    )


def _check_code_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    config = step.get("config")
    if not config:
        return [_missing_config(step, "Code", path)]

    issues = []
    code = config.get("code")
    language = config.get("language")

    if not code:
        issues.append(
            error("MISSING_CODE", f"Code step {step['id']} is missing code", path=f"{path}.config.code")
        )
    elif isinstance(code, str):
        if len(code) > MAX_CODE_LENGTH:
            issues.append(
                warning(
                    "LONG_CODE",
                    f"Code step {step['id']} has very long code ({len(code)} characters)",
                    path=f"{path}.config.code",
                    suggestion="Consider breaking down complex code into multiple steps",
                )
            )
        if language in (None, "python3") and not re.search(r"^\s*def\s+main\s*\(", code, re.MULTILINE):
            issues.append(
                warning(
                    "MISSING_MAIN_FUNCTION",
                    f"Code step {step['id']} should define a main function",
                    path=f"{path}.config.code",
                    suggestion="Define a main function as the entry point",
                )
            )

    if not language:
        issues.append(
            warning(
                "MISSING_LANGUAGE",
                f"Code step {step['id']} is missing language specification (defaults to python3)",
                path=f"{path}.config.language",
                suggestion="Specify the programming language (python3, javascript, bash)",
            )
        )
    elif language not in DECLARED_LANGUAGES:
        issues.append(
            error(
                "UNSUPPORTED_LANGUAGE",
                f"Code step {step['id']} uses unsupported language: {language}",
                path=f"{path}.config.language",
                severity=Severity.MEDIUM,
            )
        )
    elif language not in EXECUTABLE_LANGUAGES:
        issues.append(
            warning(
                "LANGUAGE_NOT_EXECUTABLE",
                f"Code step {step['id']} uses {language}, which this engine cannot execute",
                path=f"{path}.config.language",
                suggestion="Rewrite the step in python3",
            )
        )

    issues.extend(_check_timeout(step, path, config))
    return issues


def _check_llm_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    config = step.get("config")
    if not config:
        return [_missing_config(step, "LLM", path)]

    issues = []
    if not config.get("model"):
        issues.append(
            error(
                "MISSING_MODEL",
                f"LLM step {step['id']} is missing model specification",
                path=f"{path}.config.model",
            )
        )

    prompt = config.get("prompt")
    if not prompt:
        issues.append(
            error("MISSING_PROMPT", f"LLM step {step['id']} is missing prompt", path=f"{path}.config.prompt")
        )
    elif isinstance(prompt, str):
        if len(prompt) < MIN_PROMPT_LENGTH:
            issues.append(
                warning(
                    "SHORT_PROMPT",
                    f"LLM step {step['id']} has very short prompt",
                    path=f"{path}.config.prompt",
                    suggestion="Consider providing more detailed instructions",
                )
            )
        elif len(prompt) > MAX_PROMPT_LENGTH:
            issues.append(
                warning(
                    "LONG_PROMPT",
                    f"LLM step {step['id']} has very long prompt",
                    path=f"{path}.config.prompt",
                    suggestion="Consider breaking down into multiple steps",
                )
            )

    temperature = config.get("temperature")
    if temperature is not None:
        low, high = TEMPERATURE_RANGE
        if not _is_number(temperature) or not low <= temperature <= high:
            issues.append(
                error(
                    "INVALID_TEMPERATURE",
                    f"LLM step {step['id']} has invalid temperature: {temperature}",
                    path=f"{path}.config.temperature",
                    severity=Severity.MEDIUM,
                )
            )

    max_tokens = config.get("max_tokens")
    if max_tokens is not None:
        low, high = TOKEN_LIMIT_RANGE
        if not _is_number(max_tokens) or not low <= max_tokens <= high:
            issues.append(
                warning(
                    "UNUSUAL_TOKEN_LIMIT",
                    f"LLM step {step['id']} has unusual max_tokens: {max_tokens}",
                    path=f"{path}.config.max_tokens",
                    suggestion=f"Typical range is {low} to {high}",
                )
            )

    issues.extend(_check_timeout(step, path, config))
    return issues


def _check_http_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    config = step.get("config")
    if not config:
        return [_missing_config(step, "HTTP", path)]

    issues = []
    url = config.get("url")
    if not url:
        issues.append(error("MISSING_URL", f"HTTP step {step['id']} is missing URL", path=f"{path}.config.url"))
    elif not isinstance(url, str) or not _is_valid_template_url(url):
        issues.append(
            error(
                "INVALID_URL",
                f"HTTP step {step['id']} has invalid URL format",
                path=f"{path}.config.url",
                severity=Severity.MEDIUM,
            )
        )

    method = config.get("method")
    if not method:
        issues.append(
            warning(
                "MISSING_METHOD",
                f"HTTP step {step['id']} is missing method (defaults to GET)",
                path=f"{path}.config.method",
                suggestion="Specify the HTTP method explicitly",
            )
        )
    elif not isinstance(method, str) or method.upper() not in HTTP_METHODS:
        issues.append(
            error(
                "INVALID_HTTP_METHOD",
                f"HTTP step {step['id']} has invalid method: {method}",
                path=f"{path}.config.method",
                severity=Severity.MEDIUM,
            )
        )

    issues.extend(_check_timeout(step, path, config))
    return issues


def _check_condition_step(
    step: Dict[str, Any], path: str, view: _DocumentView
) -> List[ValidationIssue]:
    config = step.get("config") or {}
    issues = []
    if not config.get("condition"):
        issues.append(
            error(
                "MISSING_CONDITION",
                f"Condition step {step['id']} is missing condition",
                path=f"{path}.config.condition",
            )
        )

    downstream = {
        step_id for step_id in view.step_ids if step["id"] in ancestors(step_id, view.dependencies)
    }
    for key, code in (("true_step", "MISSING_TRUE_STEP"), ("false_step", "MISSING_FALSE_STEP")):
        target = config.get(key)
        if target is None:
            continue
        if not isinstance(target, str):
            issues.append(
                error(
                    "INVALID_BRANCH_TARGET",
                    f"Condition step {step['id']} has invalid {key}: "
                    f"expected a step id, got {type(target).__name__}",
                    path=f"{path}.config.{key}",
                    severity=Severity.MEDIUM,
                )
            )
        elif target not in view.step_ids:
            issues.append(
                error(
                    code,
                    f"Condition step {step['id']} references non-existent {key}: {target}",
                    path=f"{path}.config.{key}",
                    severity=Severity.MEDIUM,
                )
            )
        elif target not in downstream:
            issues.append(
                error(
                    "BRANCH_NOT_DOWNSTREAM",
                    f"Condition step {step['id']} routes to {target}, which does not depend on it",
                    path=f"{path}.config.{key}",
                    severity=Severity.MEDIUM,
                )
            )
    return issues


def _check_reserved_step(step: Dict[str, Any], path: str, view: _DocumentView) -> List[ValidationIssue]:
    return [
        warning(
            "RESERVED_STEP_TYPE",
            f"Step {step['id']} uses reserved type '{step['type']}', which cannot be executed yet",
            path=f"{path}.type",
            suggestion="Express the work with code, llm, http or condition steps",
        )
    ]


def _check_timeout(step: Dict[str, Any], path: str, config: Dict[str, Any]) -> List[ValidationIssue]:
    timeout = config.get("timeout")
    if timeout is None:
        return []
    low, high = TIMEOUT_RANGE_MS
    if _is_number(timeout) and low <= timeout <= high:
        return []
    return [
        warning(
            "UNUSUAL_TIMEOUT",
            f"Step {step['id']} has unusual timeout: {timeout}ms",
            path=f"{path}.config.timeout",
            suggestion=f"Timeouts are milliseconds; typical range is {low} to {high}",
        )
    ]


def _check_error_handling(
    step: Dict[str, Any], path: str, view: _DocumentView
) -> List[ValidationIssue]:
    handling = step.get("error_handling") or {}
    if handling.get("on_error") != "fallback":
        return []

    fallback = handling.get("fallback_step")
    if not fallback:
        message = f"Step {step['id']} uses fallback error handling without a fallback_step"
    elif fallback == step["id"]:
        message = f"Step {step['id']} cannot be its own fallback_step"
    elif fallback not in view.step_ids:
        message = f"Step {step['id']} references non-existent fallback_step: {fallback}"
    else:
        return []
    return [error("MISSING_FALLBACK_STEP", message, path=f"{path}.error_handling.fallback_step")]


_STEP_CHECKERS = {
    StepType.START.value: _check_start_step,
    StepType.END.value: _check_end_step,
    StepType.CODE.value: _check_code_step,
    StepType.LLM.value: _check_llm_step,
    StepType.HTTP.value: _check_http_step,
    StepType.CONDITION.value: _check_condition_step,
    StepType.LOOP.value: _check_reserved_step,
    StepType.PARALLEL.value: _check_reserved_step,
}


def _check_outputs(view: _DocumentView) -> List[ValidationIssue]:
    issues = []
    for name, spec in view.outputs.items():
        path = f"outputs.{name}"
        if not isinstance(spec, dict):
            issues.append(error("INVALID_OUTPUT_DEFINITION", f"Output {name} has invalid definition", path=path))
        elif not spec.get("source"):
            issues.append(
                error("MISSING_OUTPUT_SOURCE", f"Output {name} is missing source", path=f"{path}.source")
            )
    return issues


def _check_references(view: _DocumentView) -> List[ValidationIssue]:
    """Validate every ``${...}`` token in step configs and output sources."""
    issues = []
    for index, step in enumerate(view.steps):
        upstream = ancestors(step["id"], view.dependencies)
        for text in collect_strings(step.get("config") or {}):
            for reference in find_references(text):
                issues.extend(
                    _check_reference(reference, f"workflow.steps.{index}.config", view, step["id"], upstream)
                )

    for name, spec in view.outputs.items():
        if isinstance(spec, dict):
            for reference in find_references(spec.get("source")):
                issues.extend(_check_reference(reference, f"outputs.{name}.source", view))
    return issues


def _check_reference(
    reference: str,
    path: str,
    view: _DocumentView,
    owner: Optional[str] = None,
    upstream: Optional[Set[str]] = None,
) -> List[ValidationIssue]:
    parts = [part.strip() for part in reference.split(".")]
    prefix = parts[0]

    if prefix == "sys":
        return []
    if prefix == "input":
        input_name = parts[1] if len(parts) > 1 else ""
        if input_name in view.inputs:
            return []
        return [
            error(
                "INVALID_INPUT_REFERENCE",
                f"Reference to non-existent input: {input_name or reference}",
                path=path,
                severity=Severity.MEDIUM,
            )
        ]
    if prefix in view.inputs:
        return []
    if prefix not in view.step_ids:
        issues = [
            error(
                "INVALID_STEP_REFERENCE",
                f"Reference to non-existent step: {prefix}",
                path=path,
                severity=Severity.MEDIUM,
            )
        ]
        if len(parts) < 2:
            issues.append(
                warning(
                    "INCOMPLETE_REFERENCE",
                    f"Expression contains incomplete reference: ${{{reference}}}",
                    path=path,
                    suggestion="Use format ${step_id.output_name} or ${input.variable_name}",
                )
            )
        return issues

    if owner is not None and upstream is not None and prefix not in upstream:
        return [
            warning(
                "REFERENCE_NOT_UPSTREAM",
                f"Step {owner} references {prefix}, which is not one of its dependencies",
                path=path,
                suggestion=f"Add {prefix} to depends_on so its result exists when {owner} runs",
            )
        ]
    return []


def lint_best_practices(data: Dict[str, Any]) -> List[ValidationIssue]:
    """Advisory style checks; only ever returns warnings."""
    issues = []
    metadata = data.get("metadata") or {}
    name = metadata.get("name") or ""
    if name and not WORKFLOW_NAME_PATTERN.match(name):
        issues.append(
            warning(
                "WORKFLOW_NAMING",
                "Workflow name should use snake_case format",
                path="metadata.name",
                suggestion="Use lowercase letters, numbers, and underscores only",
            )
        )

    description = metadata.get("description")
    if not description:
        issues.append(
            warning(
                "MISSING_DESCRIPTION",
                "Workflow is missing description",
                path="metadata.description",
                suggestion="Add a description to document the workflow purpose",
            )
        )
    elif len(description) < MIN_DESCRIPTION_LENGTH:
        issues.append(
            warning(
                "SHORT_DESCRIPTION",
                "Workflow description is very short",
                path="metadata.description",
                suggestion="Provide a more detailed description of the workflow purpose",
            )
        )

    step_count = len(data["workflow"]["steps"])
    if step_count > MAX_STEPS:
        issues.append(
            warning(
                "COMPLEX_WORKFLOW",
                f"Workflow has many steps ({step_count})",
                path="workflow.steps",
                suggestion="Consider breaking down into smaller, composable workflows",
            )
        )

    input_count = len(data.get("inputs") or {})
    if input_count > MAX_INPUTS:
        issues.append(
            warning(
                "MANY_INPUTS",
                f"Workflow has many inputs ({input_count})",
                path="inputs",
                suggestion="Consider grouping related inputs into objects",
            )
        )
    return issues


def is_valid_url(url: str) -> bool:
    """True if ``url`` parses as an absolute http(s) URL with a host."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_valid_template_url(url: str) -> bool:
    # A URL that starts with a token takes its scheme and host from the run
    if url.lstrip().startswith("${"):
        return True
    return is_valid_url(mask_tokens(url))
