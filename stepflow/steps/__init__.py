"""
Step handlers and the dispatcher that routes steps to them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from stepflow.exceptions import StepExecutionError, StepflowError, UnsupportedStepTypeError
from stepflow.steps.base import StepHandler
from stepflow.steps.builtin import EndStepHandler, StartStepHandler
from stepflow.steps.code import CodeStepHandler
from stepflow.steps.condition import ConditionStepHandler, evaluate_condition
from stepflow.steps.http import HttpStepHandler
from stepflow.steps.llm import HostedTextGenerator, LlmStepHandler, TextGenerator
from stepflow.steps.sandbox import ProcessSandbox

if TYPE_CHECKING:
    import httpx

    from stepflow.config import EngineConfig
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext
    from stepflow.status import StepType

logger = logging.getLogger(__name__)


class StepDispatcher:
    """Routes each step to the handler registered for its type.

    Examples:
        >>> dispatcher = StepDispatcher.from_config(get_config())
        >>> dispatcher.dispatch(step, context)

        Replace a collaborator in tests:
        >>> dispatcher = StepDispatcher(http_client=httpx.Client(transport=mock))
    """

    def __init__(
        self,
        sandbox: ProcessSandbox | None = None,
        text_generator: TextGenerator | None = None,
        http_client: httpx.Client | None = None,
        http_timeout_ms: int = 30000,
    ):
        self._handlers: dict[str, StepHandler] = {}
        for handler in (
            StartStepHandler(),
            EndStepHandler(),
            CodeStepHandler(sandbox),
            LlmStepHandler(text_generator),
            HttpStepHandler(http_client, timeout_ms=http_timeout_ms),
            ConditionStepHandler(),
        ):
            self.register(handler)

    @classmethod
    def from_config(cls, config: EngineConfig, **overrides: Any) -> StepDispatcher:
        """Build a dispatcher whose collaborators follow ``config``."""
        options: dict[str, Any] = {
            "sandbox": ProcessSandbox(config.sandbox_memory_mb, config.sandbox_timeout_ms),
            "text_generator": HostedTextGenerator.from_config(config),
            "http_timeout_ms": config.http_timeout_ms,
        }
        options.update(overrides)
        return cls(**options)

    def register(self, handler: StepHandler) -> None:
        """Register (or replace) the handler for ``handler.step_type``."""
        self._handlers[str(handler.step_type.value)] = handler

    def handler_for(self, step_type: StepType | str) -> StepHandler | None:
        key = step_type.value if hasattr(step_type, "value") else str(step_type)
        return self._handlers.get(key)

    def dispatch(self, step: StepSpec, context: ExecutionContext) -> Any:
        """Execute one step and return its result value.

        Raises:
            UnsupportedStepTypeError: No handler for the step type.
            StepExecutionError: The handler failed; unexpected exceptions are
                wrapped so the error policy sees a single error family.
        """
        handler = self.handler_for(step.type)
        if handler is None:
            raise UnsupportedStepTypeError(step.type.value, step_id=step.id)

        try:
            return handler.execute(step, context)
        except StepExecutionError as e:
            if not e.step_id:
                e.step_id = step.id
                e.args = (f"{e.message} (step_id={step.id})",)
            raise
        except StepflowError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in step {step.id}")
            raise StepExecutionError(f"{type(e).__name__}: {e}", step_id=step.id) from e


__all__ = [
    "StepDispatcher",
    "StepHandler",
    "StartStepHandler",
    "EndStepHandler",
    "CodeStepHandler",
    "LlmStepHandler",
    "HttpStepHandler",
    "ConditionStepHandler",
    "HostedTextGenerator",
    "TextGenerator",
    "ProcessSandbox",
    "evaluate_condition",
]
