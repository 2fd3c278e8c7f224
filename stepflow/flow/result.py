"""
Run results: per-step diagnostics and the overall ExecutionResult.

Both classes are serilux Serializable so results kept in the execution
history can be persisted and restored with ``serialize()``/``deserialize()``.
"""

from __future__ import annotations

from typing import Any

from serilux import Serializable, register_serializable

from stepflow.status import StepStatus


@register_serializable
class StepResult(Serializable):
    """Outcome of one step.

    Attributes:
        step_id: Step identifier.
        status: completed, failed or skipped (pruned by a condition).
        success: True when the step produced a usable result.
        data: The step's result value (None when it failed or was skipped).
        error: Error message when the step failed.
        duration_ms: Wall-clock time spent, including retries.
        retry_count: Extra attempts made by the retry policy.
        fallback_step: Step that supplied the result under the fallback policy.
    """

    def __init__(
        self,
        step_id: str = "",
        status: str | StepStatus = StepStatus.COMPLETED,
        success: bool = True,
        data: Any = None,
        error: str | None = None,
        duration_ms: float = 0.0,
        retry_count: int = 0,
        fallback_step: str | None = None,
    ):
        super().__init__()
        self.step_id: str = step_id
        self.status: StepStatus = StepStatus(status)
        self.success: bool = success
        self.data: Any = data
        self.error: str | None = error
        self.duration_ms: float = duration_ms
        self.retry_count: int = retry_count
        self.fallback_step: str | None = fallback_step

        self.add_serializable_fields(
            [
                "step_id",
                "status",
                "success",
                "data",
                "error",
                "duration_ms",
                "retry_count",
                "fallback_step",
            ]
        )

    def __repr__(self) -> str:
        return f"StepResult[{self.step_id}:{self.status.value}]"

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary (JSON-safe when ``data`` is)."""
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "retry_count": self.retry_count,
            "fallback_step": self.fallback_step,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepResult:
        return cls(
            step_id=data.get("step_id", ""),
            status=data.get("status", StepStatus.COMPLETED.value),
            success=data.get("success", True),
            data=data.get("data"),
            error=data.get("error"),
            duration_ms=data.get("duration_ms", 0.0),
            retry_count=data.get("retry_count", 0),
            fallback_step=data.get("fallback_step"),
        )

    def serialize(self) -> dict[str, Any]:
        data = super().serialize()
        if isinstance(data.get("status"), StepStatus):
            data["status"] = data["status"].value
        return data

    def deserialize(self, data: dict[str, Any], strict: bool = False, registry: Any = None) -> None:
        if isinstance(data.get("status"), str):
            data = dict(data)
            data["status"] = StepStatus(data["status"])
        super().deserialize(data, strict=strict, registry=registry)


@register_serializable
class ExecutionResult(Serializable):
    """Outcome of one workflow run.

    A failed run still carries the step results collected so far, so partial
    progress stays inspectable.

    Attributes:
        success: True if every executed step succeeded or was handled by policy.
        outputs: Resolved workflow outputs (only when ``success``).
        output_errors: Output name -> resolution error, for outputs set to None.
        error: Run-level error message when ``success`` is False.
        execution_time_ms: Total run time.
        step_results: Step id -> StepResult, in execution order.
        metadata: workflow_name, execution_id, executed_at, total_steps,
            completed_steps.
        cancelled: True if the run was stopped by its cancellation token.
    """

    def __init__(
        self,
        success: bool = False,
        outputs: dict[str, Any] | None = None,
        error: str | None = None,
        execution_time_ms: float = 0.0,
        step_results: dict[str, StepResult] | None = None,
        metadata: dict[str, Any] | None = None,
        output_errors: dict[str, str] | None = None,
        cancelled: bool = False,
    ):
        super().__init__()
        self.success: bool = success
        self.outputs: dict[str, Any] = outputs or {}
        self.output_errors: dict[str, str] = output_errors or {}
        self.error: str | None = error
        self.execution_time_ms: float = execution_time_ms
        self.step_results: dict[str, StepResult] = step_results or {}
        self.metadata: dict[str, Any] = metadata or {}
        self.cancelled: bool = cancelled

        self.add_serializable_fields(
            [
                "success",
                "outputs",
                "output_errors",
                "error",
                "execution_time_ms",
                "step_results",
                "metadata",
                "cancelled",
            ]
        )

    def __repr__(self) -> str:
        name = self.metadata.get("workflow_name", "?")
        return f"ExecutionResult[{name}:{'ok' if self.success else 'failed'}]"

    @property
    def workflow_name(self) -> str | None:
        return self.metadata.get("workflow_name")

    @property
    def execution_id(self) -> str | None:
        return self.metadata.get("execution_id")

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary used by the CLI and HTTP layers."""
        return {
            "success": self.success,
            "outputs": self.outputs,
            "output_errors": self.output_errors,
            "error": self.error,
            "execution_time_ms": self.execution_time_ms,
            "step_results": {
                step_id: result.to_dict() for step_id, result in self.step_results.items()
            },
            "metadata": self.metadata,
            "cancelled": self.cancelled,
        }

    def serialize(self) -> dict[str, Any]:
        """Serialize the ExecutionResult."""
        data = super().serialize()
        data["step_results"] = {
            step_id: result.serialize() if isinstance(result, StepResult) else result
            for step_id, result in self.step_results.items()
        }
        return data

    def deserialize(self, data: dict[str, Any], strict: bool = False, registry: Any = None) -> None:
        """Deserialize the ExecutionResult, rebuilding StepResult objects."""
        data = dict(data)
        raw_steps = data.pop("step_results", None) or {}
        super().deserialize(data, strict=strict, registry=registry)

        step_results: dict[str, StepResult] = {}
        for step_id, raw in raw_steps.items():
            if isinstance(raw, StepResult):
                step_results[step_id] = raw
            else:
                result = StepResult()
                result.deserialize(dict(raw), strict=strict, registry=registry)
                step_results[step_id] = result
        self.step_results = step_results
