"""
Start and end marker steps.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from stepflow.steps.base import StepHandler
from stepflow.status import StepType

if TYPE_CHECKING:
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext


class StartStepHandler(StepHandler):
    step_type = StepType.START

    def execute(self, step: StepSpec, context: ExecutionContext) -> dict[str, Any]:
        return {"started_at": datetime.now().isoformat()}


class EndStepHandler(StepHandler):
    step_type = StepType.END

    def execute(self, step: StepSpec, context: ExecutionContext) -> dict[str, Any]:
        return {"completed_at": datetime.now().isoformat()}
