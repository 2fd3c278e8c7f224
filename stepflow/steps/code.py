"""
Code step: runs a python3 ``main`` function in the process sandbox.

The body is passed through literally; scope variables reach it as bindings
and the declared workflow inputs as positional arguments of ``main``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from stepflow.exceptions import SandboxError, StepExecutionError, UnsupportedLanguageError
from stepflow.steps.base import StepHandler
from stepflow.steps.sandbox import ProcessSandbox
from stepflow.status import StepType

if TYPE_CHECKING:
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def build_main_args(context: ExecutionContext) -> list[Any]:
    """Declared input values in declaration order, skipping missing ones."""
    return [
        context.inputs[name]
        for name in context.declared_inputs
        if context.inputs.get(name) is not None
    ]


def build_bindings(context: ExecutionContext) -> dict[str, Any]:
    """JSON-safe deep copy of the template scope."""
    return json.loads(json.dumps(context.variables, default=str))


def emit_logs(step_id: str, logs: list[dict[str, str]]) -> None:
    for line in logs:
        level = _LOG_LEVELS.get(line.get("level", "info"), logging.INFO)
        logger.log(level, f"[Step {step_id}] {line.get('message', '')}")


class CodeStepHandler(StepHandler):
    """Executes ``code`` steps.

    Only python3 bodies run; javascript and bash are accepted by the document
    format but fail here with UnsupportedLanguageError.
    """

    step_type = StepType.CODE
    languages = ("python3",)

    def __init__(self, sandbox: ProcessSandbox | None = None):
        self.sandbox = sandbox or ProcessSandbox()

    def execute(self, step: StepSpec, context: ExecutionContext) -> Any:
        config = step.config
        if not config.code:
            raise StepExecutionError(f"Code step {step.id} is missing code", step_id=step.id)

        language = config.language or "python3"
        if language not in self.languages:
            raise UnsupportedLanguageError(language, step_id=step.id)

        try:
            result = self.sandbox.run(
                config.code,
                build_bindings(context),
                build_main_args(context),
                step_id=step.id,
                timeout_ms=config.timeout,
                cancel_token=context.cancel_token,
            )
        except SandboxError as e:
            emit_logs(step.id, e.logs)
            raise

        emit_logs(step.id, result.logs)
        return result.value
