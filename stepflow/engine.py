"""
Workflow engine.

The engine is the surface every calling layer (CLI, HTTP server, scheduler)
talks to: load and validate documents, run registered workflows, list them
and inspect the execution history.

Execution model: steps run one at a time in planner order. Each step goes
through the dispatcher under its error policy; condition steps prune the
branch they did not take. Outputs are resolved after the last step.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from stepflow.config import EngineConfig, get_config
from stepflow.dsl.models import StepSpec, WorkflowDefinition
from stepflow.dsl.validation import ValidationResult, validate_document
from stepflow.exceptions import (
    RunCancelledError,
    StepExecutionError,
    StepflowError,
    UnresolvedReferenceError,
)
from stepflow.flow.context import CancellationToken, ExecutionContext
from stepflow.flow.error_policy import ErrorPolicyHandler
from stepflow.flow.expressions import resolve_template
from stepflow.flow.inputs import process_inputs
from stepflow.flow.planner import order_steps
from stepflow.flow.result import ExecutionResult, StepResult
from stepflow.loader import WorkflowLoader
from stepflow.registry import WorkflowRegistry, get_workflow_registry
from stepflow.status import ErrorPolicy, StepStatus, StepType
from stepflow.steps import StepDispatcher

logger = logging.getLogger(__name__)


def coerce_output(value: Any, declared_type: str | None) -> Any:
    """Convert a string output to its declared type when it parses cleanly."""
    if not isinstance(value, str) or declared_type in (None, "string"):
        return value
    text = value.strip()
    try:
        if declared_type == "integer":
            return int(text)
        if declared_type == "number":
            number = float(text)
            return int(number) if number.is_integer() and "." not in text else number
        if declared_type == "boolean":
            lowered = text.lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            return value
        if declared_type in ("array", "object"):
            parsed = json.loads(text)
            expected = list if declared_type == "array" else dict
            return parsed if isinstance(parsed, expected) else value
    except ValueError:
        logger.debug(f"Output value {value!r} is not a valid {declared_type}; kept as string")
    return value


def prune_branches(
    steps: list[StepSpec], condition: StepSpec, outcome: Any, pruned: set[str]
) -> set[str]:
    """Steps to skip after a condition step finished.

    The untaken branch target is pruned (both targets when the condition
    produced no outcome), then every step whose dependencies are all pruned.

    Args:
        steps: Steps in execution order.
        condition: The condition step.
        outcome: Its result (``{result, branch, next_step}``) or None.
        pruned: Steps already pruned earlier in the run.

    Returns:
        The updated pruned set.
    """
    config = condition.config
    if isinstance(outcome, Mapping) and "result" in outcome:
        untaken = [config.false_step if outcome["result"] else config.true_step]
        untaken = [target for target in untaken if target and target != outcome.get("next_step")]
    else:
        untaken = [target for target in (config.true_step, config.false_step) if target]

    result = set(pruned) | set(untaken)
    for step in steps:
        if step.id not in result and step.depends_on and all(dep in result for dep in step.depends_on):
            result.add(step.id)
    return result


def fallback_targets(steps: list[StepSpec]) -> set[str]:
    """Ids named as ``fallback_step`` by a step using the fallback policy.

    These steps only run in place of a failed step, never in planner order.
    """
    return {
        step.error_handling.fallback_step
        for step in steps
        if step.error_handling.on_error == ErrorPolicy.FALLBACK and step.error_handling.fallback_step
    }


class WorkflowEngine:
    """Loads, validates and runs workflows.

    Examples:
        >>> engine = WorkflowEngine()
        >>> name = engine.load_workflow_file("flows/increment.yaml")
        >>> result = engine.run(name, {"x": 41})
        >>> result.outputs["answer"]
        42
    """

    def __init__(
        self,
        registry: WorkflowRegistry | None = None,
        dispatcher: StepDispatcher | None = None,
        config: EngineConfig | None = None,
    ):
        """Initialize WorkflowEngine.

        Args:
            registry: Definition registry (process-wide instance by default).
            dispatcher: Step dispatcher (built from ``config`` by default).
            config: Engine configuration (``get_config()`` by default).
        """
        self.config = config or get_config()
        self.registry = registry or get_workflow_registry()
        self.loader = WorkflowLoader(self.registry)
        self.dispatcher = dispatcher or StepDispatcher.from_config(self.config)
        self._history: deque[ExecutionResult] = deque(maxlen=self.config.history_limit)
        self._history_lock = threading.Lock()

    # Loading and inspection

    def load_workflow(self, text: str) -> str:
        """Validate and register a document; returns the workflow name.

        Raises:
            WorkflowLoadError: ParseError, SchemaValidationError or
                SemanticValidationError carrying the full ValidationResult.
        """
        return self.loader.load(text).name

    def load_workflow_file(self, path: str | Path) -> str:
        return self.loader.load_file(path).name

    def validate(self, text: str) -> ValidationResult:
        """Validate a document without registering it."""
        result, _ = validate_document(text)
        return result

    def list_workflows(self) -> list[str]:
        return self.registry.list_names()

    def get_workflow_detail(self, name: str) -> WorkflowDefinition:
        """Registered definition by name.

        Raises:
            WorkflowNotFoundError: If no workflow is registered under ``name``.
        """
        return self.registry.require(name)

    def get_execution_history(self) -> list[ExecutionResult]:
        """Most recent runs, oldest first."""
        with self._history_lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._history_lock:
            self._history.clear()

    # Execution

    def run(
        self,
        name: str,
        inputs: Mapping[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Run a registered workflow.

        Step failures never raise: they are handled by the step's error
        policy, and a run aborted by a failure (or by cancellation) returns
        ``ExecutionResult(success=False)`` with the step results so far.

        Raises:
            WorkflowNotFoundError: Unknown workflow name.
            InputValidationError: Inputs do not satisfy the declared specs.
        """
        definition = self.registry.require(name)
        processed = process_inputs(definition.inputs, inputs or {})
        context = ExecutionContext.create(definition, processed, cancel_token)
        logger.info(f"Starting workflow {name} ({context.execution_id})")

        step_results: dict[str, StepResult] = {}
        error: str | None = None
        cancelled = False

        try:
            self._run_steps(definition, context, step_results)
        except RunCancelledError as e:
            cancelled = True
            error = str(e)
            if context.current_step and context.current_step not in step_results:
                step_results[context.current_step] = StepResult(
                    context.current_step, StepStatus.FAILED, success=False, error=error
                )
            logger.warning(f"Workflow {name} cancelled: {error}")
        except StepflowError as e:
            error = e.message if isinstance(e, StepExecutionError) else str(e)
            logger.error(f"Workflow failed: {name} - {error}")

        outputs: dict[str, Any] = {}
        output_errors: dict[str, str] = {}
        if error is None:
            outputs, output_errors = self._resolve_outputs(definition, context)

        completed = sum(1 for r in step_results.values() if r.status == StepStatus.COMPLETED)
        result = ExecutionResult(
            success=error is None,
            outputs=outputs,
            output_errors=output_errors,
            error=error,
            execution_time_ms=context.elapsed_ms(),
            step_results=step_results,
            metadata={
                "workflow_name": definition.name,
                "execution_id": context.execution_id,
                "executed_at": context.start_time.isoformat(),
                "total_steps": len(definition.steps),
                "completed_steps": completed,
            },
            cancelled=cancelled,
        )

        with self._history_lock:
            self._history.append(result)
        if result.success:
            logger.info(
                f"Workflow completed successfully: {name} ({result.execution_time_ms:.0f}ms)"
            )
        return result

    def _run_steps(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        step_results: dict[str, StepResult],
    ) -> None:
        """Execute steps in order, filling ``step_results``.

        Raises:
            StepflowError: The run must stop (fail policy, planning failure).
            RunCancelledError: The cancel token was triggered.
        """
        order = order_steps(definition.steps)
        pruned: set[str] = set()
        reserved = fallback_targets(definition.steps)

        for step in order:
            context.cancel_token.raise_if_cancelled(step.id)

            if step.id in pruned:
                logger.info(f"Skipping step {step.id}: branch not taken")
                step_results[step.id] = StepResult(step.id, StepStatus.SKIPPED, success=False)
                continue
            if step.id in reserved:
                if step.id not in step_results:
                    logger.debug(f"Skipping step {step.id}: only runs as a fallback")
                    step_results[step.id] = StepResult(step.id, StepStatus.SKIPPED, success=False)
                continue

            context.current_step = step.id
            logger.debug(f"Executing step {step.id} ({step.type.value})")
            started = time.perf_counter()

            policy = ErrorPolicyHandler(
                step.error_handling,
                step.id,
                run_fallback=lambda fallback_id: self._run_fallback(definition, fallback_id, context),
                cancel_token=context.cancel_token,
            )
            outcome = policy.execute(lambda: self.dispatcher.dispatch(step, context))
            duration_ms = (time.perf_counter() - started) * 1000

            if outcome.success:
                context.record(step.id, outcome.value)
                if outcome.fallback_step:
                    context.record(outcome.fallback_step, outcome.value)
                    step_results[outcome.fallback_step] = StepResult(
                        outcome.fallback_step,
                        StepStatus.COMPLETED,
                        success=True,
                        data=outcome.value,
                    )
                step_results[step.id] = StepResult(
                    step.id,
                    StepStatus.COMPLETED,
                    success=True,
                    data=outcome.value,
                    duration_ms=duration_ms,
                    retry_count=outcome.retry_count,
                    fallback_step=outcome.fallback_step,
                )
            else:
                message = getattr(outcome.error, "message", str(outcome.error))
                step_results[step.id] = StepResult(
                    step.id,
                    StepStatus.FAILED,
                    success=False,
                    error=message,
                    duration_ms=duration_ms,
                    retry_count=outcome.retry_count,
                    fallback_step=outcome.fallback_step,
                )
                if outcome.abort:
                    raise StepExecutionError(f"Step {step.id} failed: {message}", step_id=step.id)

            if step.type == StepType.CONDITION:
                pruned = prune_branches(order, step, outcome.value if outcome.success else None, pruned)

        context.current_step = None

    def _run_fallback(
        self, definition: WorkflowDefinition, fallback_id: str, context: ExecutionContext
    ) -> Any:
        step = definition.get_step(fallback_id)
        if step is None:
            raise StepExecutionError(f"Fallback step not found: {fallback_id}")
        return self.dispatcher.dispatch(step, context)

    def _resolve_outputs(
        self, definition: WorkflowDefinition, context: ExecutionContext
    ) -> tuple[dict[str, Any], dict[str, str]]:
        outputs: dict[str, Any] = {}
        errors: dict[str, str] = {}
        for name, spec in definition.outputs.items():
            try:
                value = resolve_template(spec.source, context)
            except UnresolvedReferenceError as e:
                logger.warning(f"Output {name} could not be resolved: {e.message}")
                outputs[name] = None
                errors[name] = e.message
                continue
            outputs[name] = coerce_output(value, spec.type)
        return outputs, errors
