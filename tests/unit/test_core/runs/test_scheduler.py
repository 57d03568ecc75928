"""Tests for InvocationScheduler.

Covers:
- Quick phases loop in process, slow phases end the invocation
- Budget and iteration cap stop the loop
- Exactly one continuation when work remains, none otherwise
- retry_after and poll interval handling against the remaining budget
- End-to-end with the real executor and a deferred dispatcher
- Generation work in fan-out passes stays inside the invocation budget
"""

from typing import List
from unittest.mock import MagicMock

from hypoforge.config.orchestration import OrchestrationConfig
from hypoforge.core.runs.continuation import DeferredContinuationDispatcher
from hypoforge.core.runs.executor import StepExecutor
from hypoforge.core.runs.models import HypothesisStatus, RunPhase, RunStatus, StepResult
from hypoforge.core.runs.scheduler import InvocationScheduler, is_quick_phase

from .conftest import make_hypothesis, make_run


# =============================================================================
# Helpers
# =============================================================================


class TickingClock:
    """Monotonic clock that advances ``tick`` seconds per reading."""

    def __init__(self, tick: float = 0.0) -> None:
        self.tick = tick
        self.now = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.tick
        return value


def _scripted_executor(results: List[StepResult]) -> MagicMock:
    executor = MagicMock()
    executor.execute_next_step.side_effect = list(results)
    return executor


def _scheduler(executor, *, clock=None, sleeps=None, **config):
    config.setdefault("poll_interval_seconds", 0.0)
    dispatcher = MagicMock()
    sleeps = sleeps if sleeps is not None else []
    scheduler = InvocationScheduler(
        executor,
        dispatcher,
        OrchestrationConfig(**config),
        clock=clock or TickingClock(),
        sleep=sleeps.append,
    )
    return scheduler, dispatcher


# =============================================================================
# Loop control
# =============================================================================


class TestLoopControl:
    def test_quick_phases_loop_until_done(self):
        executor = _scripted_executor(
            [
                StepResult("divergent_polling", True),
                StepResult("divergent_extract", True),
                StepResult("fanout_polling", True),
                StepResult("completed", False),
            ]
        )
        scheduler, dispatcher = _scheduler(executor)

        result = scheduler.run("run-1")

        assert result.iterations == 4
        assert result.phase == "completed"
        assert result.has_more is False
        assert result.continuation_scheduled is False
        dispatcher.dispatch.assert_not_called()

    def test_slow_phase_ends_invocation(self):
        executor = _scripted_executor([StepResult("divergent_starting", True)])
        scheduler, dispatcher = _scheduler(executor)

        result = scheduler.run("run-1")

        assert result.iterations == 1
        assert result.continuation_scheduled is True
        dispatcher.dispatch.assert_called_once_with("run-1")

    def test_error_ends_without_continuation(self):
        executor = _scripted_executor([StepResult("error", False, error="boom")])
        scheduler, dispatcher = _scheduler(executor)

        result = scheduler.run("run-1")

        assert result.error == "boom"
        dispatcher.dispatch.assert_not_called()

    def test_iteration_cap(self):
        executor = _scripted_executor([StepResult("fanout_polling", True)] * 10)
        scheduler, dispatcher = _scheduler(executor, max_iterations=3)

        result = scheduler.run("run-1")

        assert result.iterations == 3
        dispatcher.dispatch.assert_called_once_with("run-1")

    def test_budget_exhausted(self):
        executor = _scripted_executor([StepResult("divergent_extract", True)] * 10)
        scheduler, dispatcher = _scheduler(executor, clock=TickingClock(tick=10.0), budget_seconds=25.0)

        result = scheduler.run("run-1")

        assert result.iterations < 10
        assert result.has_more is True
        dispatcher.dispatch.assert_called_once_with("run-1")

    def test_paused_run_yields_no_continuation(self):
        executor = _scripted_executor([StepResult("divergent_polling", False)])
        scheduler, dispatcher = _scheduler(executor)

        result = scheduler.run("run-1")

        assert result.continuation_scheduled is False
        dispatcher.dispatch.assert_not_called()


# =============================================================================
# Waiting inside the budget
# =============================================================================


class TestWaiting:
    def test_retry_after_within_budget_sleeps(self):
        executor = _scripted_executor(
            [
                StepResult("fanout_parallel", True, retry_after=2.0),
                StepResult("completed", False),
            ]
        )
        sleeps: List[float] = []
        scheduler, _ = _scheduler(executor, sleeps=sleeps)

        scheduler.run("run-1")

        assert sleeps == [2.0]

    def test_retry_after_beyond_budget_ends_invocation(self):
        executor = _scripted_executor([StepResult("fanout_parallel", True, retry_after=120.0)])
        sleeps: List[float] = []
        scheduler, dispatcher = _scheduler(executor, sleeps=sleeps, budget_seconds=50.0)

        result = scheduler.run("run-1")

        assert result.iterations == 1
        assert sleeps == []
        dispatcher.dispatch.assert_called_once_with("run-1")

    def test_poll_interval_between_polls(self):
        executor = _scripted_executor(
            [
                StepResult("divergent_polling", True),
                StepResult("divergent_polling", True),
                StepResult("completed", False),
            ]
        )
        sleeps: List[float] = []
        scheduler, _ = _scheduler(executor, sleeps=sleeps, poll_interval_seconds=1.5)

        scheduler.run("run-1")

        assert sleeps == [1.5, 1.5]

    def test_no_poll_interval_after_non_polling_phase(self):
        executor = _scripted_executor(
            [
                StepResult("divergent_extract", True),
                StepResult("completed", False),
            ]
        )
        sleeps: List[float] = []
        scheduler, _ = _scheduler(executor, sleeps=sleeps, poll_interval_seconds=1.5)

        scheduler.run("run-1")

        assert sleeps == []


class TestQuickPhase:
    def test_classification(self):
        assert is_quick_phase("divergent_polling")
        assert is_quick_phase("aggregate")
        assert not is_quick_phase("divergent_starting")
        assert not is_quick_phase("fanout_starting")
        assert not is_quick_phase("completed")
        assert not is_quick_phase("not-a-phase")


# =============================================================================
# With the real executor
# =============================================================================


class TestWithExecutor:
    def test_invocations_chain_to_completion(self, storage, gateway, clock, orchestration_config, project):
        run = make_run()
        storage.save_run(run)
        dispatcher = DeferredContinuationDispatcher()
        scheduler = InvocationScheduler(
            StepExecutor(storage, gateway, orchestration_config, clock=clock),
            dispatcher,
            orchestration_config,
            sleep=lambda _s: None,
        )

        phases = []
        for _ in range(10):
            result = scheduler.run(run.id)
            phases.append(result.phase)
            if dispatcher.pop() is None:
                break

        assert phases == ["divergent_starting", "fanout_starting", "completed"]
        assert storage.load_run(run.id).status is RunStatus.COMPLETED
        assert dispatcher.requested == []

    def test_wire_body(self, storage, gateway, clock, orchestration_config, project):
        run = make_run()
        storage.save_run(run)
        scheduler = InvocationScheduler(
            StepExecutor(storage, gateway, orchestration_config, clock=clock),
            DeferredContinuationDispatcher(),
            orchestration_config,
        )

        body = scheduler.run(run.id).to_wire()

        assert body["runId"] == run.id
        assert body["phase"] == "divergent_starting"
        assert body["hasMore"] is True
        assert body["error"] is None
        assert body["iterations"] == 1
        assert isinstance(body["elapsedMs"], int)

    def test_slow_generation_respects_budget(self, storage, gateway, clock, project):
        run = make_run(status=RunStatus.RUNNING, current_phase=RunPhase.FANOUT_POLLING, hypothesis_count=5)
        storage.save_run(run)
        for number in range(1, 6):
            storage.save_hypothesis(
                make_hypothesis(
                    run_id=run.id,
                    number=number,
                    research_output="report",
                    processing_status=HypothesisStatus.PHASE_C,
                )
            )

        monotonic = TickingClock()
        generate = gateway.generate_content

        def slow_generate(prompt, *, model_choice=None):
            monotonic.now += 0.4
            return generate(prompt, model_choice=model_choice)

        gateway.generate_content = slow_generate
        config = OrchestrationConfig(poll_interval_seconds=0.0, structure_with_model=False, budget_seconds=0.5)
        dispatcher = DeferredContinuationDispatcher()
        scheduler = InvocationScheduler(
            StepExecutor(storage, gateway, config, clock=clock),
            dispatcher,
            config,
            clock=monotonic,
            sleep=lambda _s: None,
        )

        result = scheduler.run(run.id)

        assert result.iterations == 2
        assert len(gateway.generated) == 2
        assert result.elapsed_ms < 1000
        assert result.has_more is True
        assert dispatcher.requested == [run.id]
        statuses = [h.processing_status for h in storage.list_hypotheses(run_id=run.id)]
        assert statuses.count(HypothesisStatus.PHASE_C) == 3
