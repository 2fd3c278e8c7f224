"""
Base class for step handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext
    from stepflow.status import StepType


class StepHandler:
    """Executes steps of one type.

    Subclasses set ``step_type`` and implement ``execute``. Handlers raise
    StepExecutionError subclasses on failure; the dispatcher wraps anything
    else.
    """

    step_type: StepType

    def execute(self, step: StepSpec, context: ExecutionContext) -> Any:
        """Run the step and return its result value.

        Args:
            step: Step being executed (config not yet resolved).
            context: Current execution context.
        """
        raise NotImplementedError
