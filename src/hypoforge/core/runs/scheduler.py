"""Invocation scheduler.

One scheduler invocation drives a run as far as it safely can inside a
wall-clock budget, then hands off to a fresh invocation:

- Quick phases (status checks, parsing, short generation) are looped in
  process while the budget and iteration cap allow.
- Slow phases (anything that submits a long-running interaction) run exactly
  once per invocation and end the loop.
- When work remains, exactly one continuation is dispatched.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from hypoforge.config.decorators import timed
from hypoforge.config.orchestration import OrchestrationConfig

from .executor import StepExecutor
from .models import POLLING_PHASES, QUICK_PHASES, InvocationResult, RunPhase, StepResult

logger = logging.getLogger(__name__)


class ContinuationDispatcher(Protocol):
    """Hands a run off to a fresh invocation."""

    def dispatch(self, run_id: str) -> None: ...

    def send(self, run_id: str) -> bool: ...


def is_quick_phase(phase: str) -> bool:
    try:
        return RunPhase(phase) in QUICK_PHASES
    except ValueError:
        return False


class InvocationScheduler:
    """Loops the step executor within one invocation budget.

    Attributes:
        executor: Step executor
        dispatcher: Continuation dispatcher called when work remains
        config: Budget, iteration cap and poll interval
    """

    def __init__(
        self,
        executor: StepExecutor,
        dispatcher: ContinuationDispatcher,
        config: Optional[OrchestrationConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.executor = executor
        self.dispatcher = dispatcher
        self.config = config or OrchestrationConfig()
        self._clock = clock
        self._sleep = sleep

    @timed("scheduler.invocation")
    def run(self, run_id: str) -> InvocationResult:
        """Drive ``run_id`` until the budget, the cap or a slow phase stops it.

        Returns:
            InvocationResult describing the last executed step
        """
        budget = self.config.budget_seconds
        start = self._clock()
        iterations = 0
        result: Optional[StepResult] = None

        while True:
            result = self.executor.execute_next_step(run_id)
            iterations += 1

            if not result.has_more or result.error:
                break
            if iterations >= self.config.max_iterations:
                logger.info("Run %s reached the iteration cap (%d)", run_id, iterations)
                break
            if not is_quick_phase(result.phase):
                break

            elapsed = self._clock() - start
            if elapsed >= budget:
                break
            remaining = budget - elapsed

            if result.retry_after:
                if result.retry_after >= remaining:
                    logger.info(
                        "Run %s retry_after %.1fs exceeds remaining budget %.1fs",
                        run_id,
                        result.retry_after,
                        remaining,
                    )
                    break
                self._sleep(result.retry_after)
            elif RunPhase(result.phase) in POLLING_PHASES:
                if self.config.poll_interval_seconds >= remaining:
                    break
                if self.config.poll_interval_seconds > 0:
                    self._sleep(self.config.poll_interval_seconds)

        elapsed_ms = int((self._clock() - start) * 1000)
        continuation = result.has_more and not result.error
        if continuation:
            self.dispatcher.dispatch(run_id)

        logger.info(
            "Run %s invocation ended at %s after %d iterations (has_more=%s)",
            run_id,
            result.phase,
            iterations,
            result.has_more,
            extra={"run_id": run_id, "iterations": iterations, "elapsed_ms": elapsed_ms},
        )
        return InvocationResult(
            run_id=run_id,
            phase=result.phase,
            has_more=result.has_more,
            error=result.error,
            iterations=iterations,
            elapsed_ms=elapsed_ms,
            continuation_scheduled=continuation,
        )
