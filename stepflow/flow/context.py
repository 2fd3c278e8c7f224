"""
Per-run execution state.

An ExecutionContext is created at the start of ``WorkflowEngine.run()``,
mutated only forward as steps complete, and discarded once the
ExecutionResult is built. It is never shared between threads, so it carries
no locks. The CancellationToken is the one object that crosses threads: a
caller holds it and may cancel the run from anywhere.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from stepflow.exceptions import RunCancelledError

if TYPE_CHECKING:
    from stepflow.dsl.models import WorkflowDefinition


def new_execution_id() -> str:
    """Generate an execution id of the form ``exec_<millis>_<random>``."""
    return f"exec_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class CancellationToken:
    """Run-scoped cancellation flag.

    Examples:
        >>> token = CancellationToken()
        >>> threading.Timer(5.0, token.cancel).start()
        >>> engine.run("slow_flow", {}, cancel_token=token)
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns True early if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self, step_id: str = "") -> None:
        if self._event.is_set():
            where = f" before step {step_id}" if step_id else ""
            raise RunCancelledError(f"Run cancelled{where}")


@dataclass
class ExecutionContext:
    """Mutable state of a single workflow run.

    Attributes:
        definition: Workflow being executed (read-only).
        inputs: Validated and defaulted copy of the caller's inputs.
        step_results: Results of completed steps, in execution order. Skipped
            and pruned steps never appear here.
        sys: Runtime metadata exposed to templates as ``${sys.*}``.
        start_time: When the run started.
        current_step: Id of the step being executed (for diagnostics).
        cancel_token: Cancellation flag shared with the caller.
    """

    definition: WorkflowDefinition
    inputs: dict[str, Any] = field(default_factory=dict)
    step_results: dict[str, Any] = field(default_factory=dict)
    sys: dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=datetime.now)
    current_step: str | None = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)

    @classmethod
    def create(
        cls,
        definition: WorkflowDefinition,
        inputs: dict[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionContext:
        """Create a fresh context with its ``sys`` namespace populated."""
        start_time = datetime.now()
        return cls(
            definition=definition,
            inputs=dict(inputs),
            sys={
                "current_time": start_time.isoformat(),
                "workflow_name": definition.name,
                "execution_id": new_execution_id(),
            },
            start_time=start_time,
            cancel_token=cancel_token or CancellationToken(),
        )

    @property
    def execution_id(self) -> str:
        return self.sys["execution_id"]

    @property
    def declared_inputs(self) -> dict[str, Any]:
        return self.definition.inputs

    @property
    def variables(self) -> dict[str, Any]:
        """Active template scope: inputs, step results and ``sys``."""
        scope: dict[str, Any] = dict(self.inputs)
        scope.update(self.step_results)
        scope["sys"] = self.sys
        return scope

    def record(self, step_id: str, value: Any) -> None:
        """Store a step's result. Each step is recorded at most once."""
        self.step_results[step_id] = value

    def elapsed_ms(self) -> float:
        return (datetime.now() - self.start_time).total_seconds() * 1000
