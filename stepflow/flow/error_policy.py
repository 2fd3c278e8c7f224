"""
Per-step error policy.

Given a step's declared ``error_handling`` and a callable that performs one
attempt of the step, decides whether the run fails, the step is skipped,
retried with exponential backoff, or replaced by a fallback step.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from stepflow.exceptions import RunCancelledError, StepflowError
from stepflow.status import ErrorPolicy

if TYPE_CHECKING:
    from stepflow.dsl.models import ErrorHandlingSpec
    from stepflow.flow.context import CancellationToken

logger = logging.getLogger(__name__)

RETRY_BACKOFF = 2.0


@dataclass
class PolicyOutcome:
    """What the policy decided for one step.

    Attributes:
        success: True if ``value`` is a usable result (directly, after retries
            or from the fallback step).
        value: The step result when ``success``.
        error: The last error when not ``success``.
        abort: True if the run must stop (``fail`` semantics).
        retry_count: Extra attempts made.
        fallback_step: Step whose result replaced the failed one.
    """

    success: bool
    value: Any = None
    error: StepflowError | None = None
    abort: bool = False
    retry_count: int = 0
    fallback_step: str | None = None


class ErrorPolicyHandler:
    """Apply a step's error policy around its attempts.

    Examples:
        >>> handler = ErrorPolicyHandler(step.error_handling, step.id, run_fallback)
        >>> outcome = handler.execute(lambda: dispatcher.dispatch(step, context))
        >>> if outcome.abort:
        ...     raise outcome.error
    """

    def __init__(
        self,
        policy: ErrorHandlingSpec,
        step_id: str,
        run_fallback: Callable[[str], Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ):
        """Initialize ErrorPolicyHandler.

        Args:
            policy: The step's error handling declaration.
            step_id: Step the policy belongs to (for logging).
            run_fallback: Executes a step by id and returns its result; used
                by the ``fallback`` policy.
            cancel_token: Interrupts retry delays when the run is cancelled.
        """
        self.policy = policy
        self.step_id = step_id
        self.run_fallback = run_fallback
        self.cancel_token = cancel_token

    def execute(self, attempt: Callable[[], Any]) -> PolicyOutcome:
        """Run ``attempt`` under the policy.

        Raises:
            RunCancelledError: Always propagated, never handled by the policy.
        """
        try:
            return PolicyOutcome(success=True, value=attempt())
        except RunCancelledError:
            raise
        except StepflowError as e:
            error = e

        strategy = self.policy.on_error
        if strategy == ErrorPolicy.RETRY:
            return self._retry(attempt, error)
        if strategy == ErrorPolicy.FALLBACK:
            return self._fallback(error)
        if strategy == ErrorPolicy.SKIP:
            logger.warning(f"Error in step {self.step_id}: {error}. Skipping step.")
            return PolicyOutcome(success=False, error=error)

        logger.error(f"Error in step {self.step_id}: {error}. Stopping execution.")
        return PolicyOutcome(success=False, error=error, abort=True)

    def _retry(self, attempt: Callable[[], Any], error: StepflowError) -> PolicyOutcome:
        max_retries = max(1, self.policy.retry_count)
        for retry in range(1, max_retries + 1):
            delay = self.policy.retry_delay * (RETRY_BACKOFF ** (retry - 1))
            logger.warning(
                f"Error in step {self.step_id}: {error}. "
                f"Retrying ({retry}/{max_retries}) after {delay}s..."
            )
            self._sleep(delay)
            try:
                value = attempt()
            except RunCancelledError:
                raise
            except StepflowError as e:
                error = e
                continue
            logger.info(f"Step {self.step_id} succeeded on retry {retry}/{max_retries}")
            return PolicyOutcome(success=True, value=value, retry_count=retry)

        logger.error(
            f"Error in step {self.step_id}: {error}. "
            f"Max retries ({max_retries}) exceeded. Stopping."
        )
        return PolicyOutcome(success=False, error=error, abort=True, retry_count=max_retries)

    def _fallback(self, error: StepflowError) -> PolicyOutcome:
        fallback_step = self.policy.fallback_step
        if not fallback_step or self.run_fallback is None:
            logger.error(
                f"Error in step {self.step_id}: {error}. "
                f"No fallback step configured. Stopping execution."
            )
            return PolicyOutcome(success=False, error=error, abort=True)

        logger.warning(
            f"Error in step {self.step_id}: {error}. Running fallback step {fallback_step}."
        )
        try:
            value = self.run_fallback(fallback_step)
        except RunCancelledError:
            raise
        except StepflowError as e:
            logger.error(f"Fallback step {fallback_step} for {self.step_id} failed: {e}")
            return PolicyOutcome(success=False, error=e, abort=True, fallback_step=fallback_step)

        return PolicyOutcome(success=True, value=value, fallback_step=fallback_step)

    def _sleep(self, delay: float) -> None:
        if delay <= 0:
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled(self.step_id)
            return
        if self.cancel_token is None:
            time.sleep(delay)
            return
        if self.cancel_token.wait(delay):
            self.cancel_token.raise_if_cancelled(self.step_id)
