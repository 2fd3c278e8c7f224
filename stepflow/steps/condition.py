"""
Condition step: evaluates a boolean expression and picks a branch.

Condition expressions use Python expression syntax. ``${...}`` tokens are
resolved first and bound as typed values, so ``${check.score} > 0.5`` compares
numbers rather than strings. ``true``, ``false`` and ``null`` are accepted as
aliases for ``True``, ``False`` and ``None``.
"""

import ast
from typing import TYPE_CHECKING, Any, Dict

from stepflow.exceptions import ConditionEvaluationError
from stepflow.flow.expressions import TOKEN_PATTERN, resolve_path
from stepflow.steps.base import StepHandler
from stepflow.status import StepType

if TYPE_CHECKING:
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext

SAFE_BUILTINS: Dict[str, Any] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "float": float,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "round": round,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "isinstance": isinstance,
}

LITERAL_ALIASES: Dict[str, Any] = {"true": True, "false": False, "null": None}

_REF_PREFIX = "_ref"


def bind_references(condition: str, context: "ExecutionContext"):
    """Replace each ``${...}`` token with a placeholder name.

    Returns:
        Tuple of (rewritten expression, {placeholder: resolved value}).

    Raises:
        UnresolvedReferenceError: If a token cannot be resolved.
    """
    bindings: Dict[str, Any] = {}

    def substitute(match) -> str:
        name = f"{_REF_PREFIX}{len(bindings)}"
        bindings[name] = resolve_path(match.group(1), context)
        return name

    return TOKEN_PATTERN.sub(substitute, condition), bindings


def _check_safe(tree: ast.AST, names: Dict[str, Any]) -> None:
    for node in ast.walk(tree):
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            if node.func.id not in SAFE_BUILTINS:
                raise ConditionEvaluationError(f"Unsafe function call: {node.func.id}")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ConditionEvaluationError(f"Access to private attribute not allowed: {node.attr}")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise ConditionEvaluationError(f"Access to name not allowed: {node.id}")
        if isinstance(node, (ast.Lambda, ast.NamedExpr)):
            raise ConditionEvaluationError("Lambdas and assignments are not allowed in conditions")


def evaluate_condition(condition: str, context: "ExecutionContext") -> bool:
    """Evaluate a condition expression against the run scope.

    Args:
        condition: Expression such as ``${fetch.status} == 200``.
        context: Current execution context.

    Returns:
        Truthiness of the expression.

    Raises:
        UnresolvedReferenceError: If a ``${...}`` token cannot be resolved.
        ConditionEvaluationError: If the expression is invalid, uses a
            forbidden operation, or fails while evaluating.
    """
    expression, bindings = bind_references(condition, context)

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ConditionEvaluationError(f"Invalid condition syntax: {e.msg}") from e

    eval_context: Dict[str, Any] = {"__builtins__": SAFE_BUILTINS}
    eval_context.update(LITERAL_ALIASES)
    eval_context.update(bindings)
    _check_safe(tree, eval_context)

    try:
        result = eval(compile(tree, "<condition>", "eval"), eval_context)
    except (TypeError, ValueError, KeyError, IndexError, AttributeError, NameError, ZeroDivisionError) as e:
        raise ConditionEvaluationError(
            f"Condition evaluation failed: {type(e).__name__}: {e}"
        ) from e
    return bool(result)


class ConditionStepHandler(StepHandler):
    """Evaluates the condition and reports the branch to take.

    The engine prunes the untaken branch target using ``next_step``.
    """

    step_type = StepType.CONDITION

    def execute(self, step: "StepSpec", context: "ExecutionContext") -> Dict[str, Any]:
        config = step.config
        result = evaluate_condition(config.condition, context)
        branch = "true" if result else "false"
        return {
            "result": result,
            "branch": branch,
            "next_step": config.true_step if result else config.false_step,
        }
