"""Step executor for resumable hypothesis runs.

``StepExecutor.execute_next_step(run_id)`` performs exactly one bounded unit
of work for a run, decided from persisted state alone, and returns without
waiting on any external long-running operation.

Per-call sequence:
1. Acquire the per-run step lock (yield if another invocation holds it)
2. Load the run
3. Return early for terminal or paused runs
4. Promote a pending run to running
5. Dispatch the current phase through the phase table
6. Persist with an optimistic version check, letting concurrent control
   writes (pause/stop) win

Only ``divergent_starting`` and fan-out submission start external work, and
both skip straight to polling when an interaction is already recorded, so a
duplicated or replayed call never submits twice.

Usage:
    from hypoforge.core.runs.executor import StepExecutor

    executor = StepExecutor(storage, gateway, config.orchestration)
    result = executor.execute_next_step(run_id)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from filelock import Timeout

from hypoforge.config.orchestration import OrchestrationConfig
from hypoforge.core.errors.pipeline import (
    ExternalOperationError,
    ParsingError,
    PipelineError,
    RateLimitError,
    RunNotFound,
    wrap_error,
)
from hypoforge.core.errors.pipeline import TimeoutError as OperationTimeoutError
from hypoforge.core.errors.storage import VersionConflictError

from .dedup import partition_duplicates
from .extraction import extract_candidates
from .fanout import HypothesisFanoutCoordinator
from .gateway import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_FAILED, AIGateway, Attachment
from .inputs import divergent_store_name, load_inputs
from .memory import RunStorage
from .models import (
    DivergentProgress,
    ExtractionProgress,
    FailedProgress,
    FanoutProgress,
    Hypothesis,
    HypothesisStatus,
    IntegratedEntry,
    InteractionRecord,
    InteractionStatus,
    PhaseTiming,
    Run,
    RunPhase,
    RunStatus,
    StepResult,
    SummaryProgress,
)
from .prompts import DIVERGENT_PROMPT, build_instruction_document, format_prompt

logger = logging.getLogger(__name__)

STEP_DIVERGENT = "divergent"

ALL_HYPOTHESES_FAILED = "ALL_HYPOTHESES_FAILED"

# Coarse step number reached on entering each phase
PHASE_STEPS: Dict[RunPhase, int] = {
    RunPhase.DIVERGENT_STARTING: 1,
    RunPhase.DIVERGENT_POLLING: 1,
    RunPhase.DIVERGENT_EXTRACT: 2,
    RunPhase.FANOUT_STARTING: 2,
    RunPhase.FANOUT_PARALLEL: 3,
    RunPhase.FANOUT_POLLING: 4,
    RunPhase.AGGREGATE: 4,
    RunPhase.COMPLETED: 5,
}

# Fields written by run control; a concurrent control write wins over the executor
CONTROL_FIELDS = ("status", "paused_at", "completed_at", "resume_count", "error_message")

# Saves tried per step before concurrent control writes win
MAX_PERSIST_ATTEMPTS = 3


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StepExecutor:
    """Advances one run by one unit of work per call.

    Attributes:
        storage: Run store
        gateway: AI gateway used by every phase
        config: Orchestration settings (timeouts, backoff, fan-out width)
    """

    def __init__(
        self,
        storage: RunStorage,
        gateway: AIGateway,
        config: Optional[OrchestrationConfig] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.storage = storage
        self.gateway = gateway
        self.config = config or OrchestrationConfig()
        self._clock = clock or _utc_now
        self._fanout = HypothesisFanoutCoordinator(storage, gateway, self.config, clock=self._clock)
        self._handlers: Dict[RunPhase, Callable[[Run], StepResult]] = {
            RunPhase.DIVERGENT_STARTING: self._divergent_starting,
            RunPhase.DIVERGENT_POLLING: self._divergent_polling,
            RunPhase.DIVERGENT_EXTRACT: self._divergent_extract,
            RunPhase.FANOUT_STARTING: self._fanout_step,
            RunPhase.FANOUT_PARALLEL: self._fanout_step,
            RunPhase.FANOUT_POLLING: self._fanout_step,
            RunPhase.AGGREGATE: self._aggregate,
        }

    def execute_next_step(self, run_id: str) -> StepResult:
        """Perform the next unit of work for ``run_id``.

        Safe to call repeatedly: terminal and paused runs are no-ops, polling
        phases only check status, and submissions are one-shot.

        Returns:
            StepResult with the executed phase (or the terminal phase the step
            ended in), whether more calls are needed, and any terminal error
        """
        # =================================================================
        # Step 1: Per-Run Step Lock
        # =================================================================
        lock = self.storage.acquire_run_lock(run_id, timeout=self.config.run_lock_timeout_seconds)
        try:
            lock.acquire()
        except Timeout:
            run = self.storage.load_run(run_id)
            phase = run.current_phase.value if run is not None else RunPhase.ERROR.value
            logger.info("Run %s is being stepped by another invocation; yielding", run_id)
            return StepResult(phase=phase, has_more=False)

        try:
            return self._execute_locked(run_id)
        finally:
            lock.release()

    def _execute_locked(self, run_id: str) -> StepResult:
        # =================================================================
        # Step 2: Load Run
        # =================================================================
        run = self.storage.load_run(run_id)
        if run is None:
            return StepResult(phase=RunPhase.ERROR.value, has_more=False, error=RunNotFound(run_id).message)

        # =================================================================
        # Step 3: Terminal and Paused Runs
        # =================================================================
        if run.is_terminal:
            error = run.error_message if run.status is RunStatus.ERROR else None
            return StepResult(phase=run.current_phase.value, has_more=False, error=error)

        if run.status is RunStatus.PAUSED:
            logger.debug("Run %s is paused at %s", run_id, run.current_phase.value)
            return StepResult(phase=run.current_phase.value, has_more=False)

        expected_version = run.state_version
        now = self._clock()

        # =================================================================
        # Step 4: Promote Pending Run
        # =================================================================
        if run.status is RunStatus.PENDING:
            run.status = RunStatus.RUNNING
            run.started_at = run.started_at or now
            if run.current_phase is RunPhase.PENDING:
                self._enter_phase(run, RunPhase.DIVERGENT_STARTING)
            logger.info("Run %s started", run_id)

        # Rate-limit backoff still in effect
        if run.next_poll_after is not None and now < run.next_poll_after:
            remaining = (run.next_poll_after - now).total_seconds()
            self._persist(run, expected_version)
            return StepResult(phase=run.current_phase.value, has_more=True, retry_after=remaining)

        # =================================================================
        # Step 5: Dispatch Phase
        # =================================================================
        phase = run.current_phase
        handler = self._handlers.get(phase)
        try:
            if handler is None:
                raise PipelineError(f"No handler for phase '{phase.value}'", "INVALID_PHASE", {"phase": phase.value})
            result = handler(run)
            run.rate_limit_retries = 0
            run.next_poll_after = None
        except RateLimitError as exc:
            result = self._back_off(run, exc, phase)
        except PipelineError as exc:
            result = self._fail_run(run, exc, phase)
        except Exception as exc:
            logger.exception("Unexpected error in phase %s of run %s", phase.value, run_id)
            result = self._fail_run(run, wrap_error(exc, f"Phase {phase.value} failed"), phase)

        # =================================================================
        # Step 6: Persist
        # =================================================================
        self._persist(run, expected_version)
        return result

    # =========================================================================
    # Phase handlers
    # =========================================================================

    def _divergent_starting(self, run: Run) -> StepResult:
        """Submit the divergent research interaction (one-shot)."""
        record = run.find_interaction(STEP_DIVERGENT)
        if record is None:
            inputs = load_inputs(self.storage, run.project_id)
            existing = [
                {"title": h.display_title, "summary": h.summary}
                for h in self.storage.list_hypotheses(project_id=run.project_id)
            ]
            instructions = build_instruction_document(
                run.hypothesis_count,
                has_previous=run.loop_index > 0,
                existing=existing,
            )
            store_name = divergent_store_name(run.id)
            interaction_id = self.gateway.create_interaction(
                format_prompt(DIVERGENT_PROMPT, {"hypothesis_count": run.hypothesis_count}),
                [*inputs.attachments, Attachment(name="task_instructions", content=instructions)],
                store_name=store_name,
                model_choice=run.model_choice.value,
            )
            record = InteractionRecord(
                step=STEP_DIVERGENT,
                interaction_id=interaction_id,
                store_name=store_name,
                started_at=self._clock(),
            )
            run.interactions.append(record)
            logger.info("Run %s submitted divergent research %s", run.id, interaction_id)
        else:
            logger.info("Run %s already has divergent interaction %s; polling", run.id, record.interaction_id)

        self._enter_phase(run, RunPhase.DIVERGENT_POLLING)
        run.progress = DivergentProgress(
            phase="divergent_polling",
            interaction_id=record.interaction_id,
            message="Divergent research submitted",
        )
        return StepResult(phase=RunPhase.DIVERGENT_STARTING.value, has_more=True)

    def _divergent_polling(self, run: Run) -> StepResult:
        """Check the divergent interaction once."""
        record = run.find_interaction(STEP_DIVERGENT)
        if record is None:
            raise ExternalOperationError("no divergent interaction recorded", step=STEP_DIVERGENT)

        timeout = self.config.operation_timeout_seconds
        if (self._clock() - record.started_at).total_seconds() > timeout:
            record.status = InteractionStatus.FAILED
            raise OperationTimeoutError("divergent research", timeout)

        snapshot = self.gateway.get_interaction(record.interaction_id)
        polls = run.progress.polls + 1 if isinstance(run.progress, DivergentProgress) else 1

        if snapshot.status == STATUS_COMPLETED:
            text = snapshot.final_text
            if not text.strip():
                raise ExternalOperationError(
                    "research completed without output", step=STEP_DIVERGENT, interaction_id=record.interaction_id
                )
            run.divergent_output = text
            record.status = InteractionStatus.COMPLETED
            record.completed_at = self._clock()
            self._delete_store(record.store_name)
            self._enter_phase(run, RunPhase.DIVERGENT_EXTRACT)
            run.progress = DivergentProgress(
                phase="divergent_polling",
                interaction_id=record.interaction_id,
                polls=polls,
                message="Divergent research completed",
            )
            logger.info("Run %s divergent research completed after %d polls", run.id, polls)

        elif snapshot.status in (STATUS_FAILED, STATUS_CANCELLED):
            record.status = InteractionStatus.FAILED
            record.completed_at = self._clock()
            raise ExternalOperationError(
                snapshot.error or f"divergent interaction {snapshot.status}",
                step=STEP_DIVERGENT,
                interaction_id=record.interaction_id,
            )

        else:
            run.progress = DivergentProgress(
                phase="divergent_polling",
                interaction_id=record.interaction_id,
                polls=polls,
                message=f"Divergent research {snapshot.status}",
            )

        return StepResult(phase=RunPhase.DIVERGENT_POLLING.value, has_more=True)

    def _divergent_extract(self, run: Run) -> StepResult:
        """Parse divergent output into hypotheses, dropping duplicates."""
        structure = None
        if self.config.structure_with_model:

            def structure(prompt: str) -> str:
                return self.gateway.generate_content(prompt, model_choice=run.model_choice.value)

        candidates = extract_candidates(run.divergent_output or "", structure=structure)
        candidates = candidates[: run.hypothesis_count]

        # Hypotheses this run already created survive a crash between rows and run save
        created_before = self.storage.list_hypotheses(run_id=run.id, include_deleted=True)
        own_hashes = {h.content_hash for h in created_before}
        project_hashes = {
            h.content_hash
            for h in self.storage.list_hypotheses(project_id=run.project_id)
            if h.run_id != run.id
        }

        fresh = [c for c in candidates if c.content_hash not in own_hashes]
        kept, dropped = partition_duplicates(fresh, project_hashes)

        if not kept and not created_before:
            raise ParsingError(
                "no usable hypotheses in divergent output",
                produced=len(candidates),
                deduped=len(dropped),
            )

        now = self._clock()
        for offset, candidate in enumerate(kept):
            index = len(created_before) + offset
            self.storage.save_hypothesis(
                Hypothesis(
                    id=str(uuid.uuid4()),
                    project_id=run.project_id,
                    run_id=run.id,
                    hypothesis_number=index + 1,
                    index_in_run=index,
                    display_title=candidate.title,
                    summary=candidate.summary,
                    content_hash=candidate.content_hash,
                    created_at=now,
                    updated_at=now,
                )
            )

        created = len(created_before) + len(kept)
        run.progress = ExtractionProgress(
            produced=len(candidates),
            deduped=len(dropped),
            created=created,
            message=f"Created {created} hypotheses ({len(dropped)} duplicates dropped)",
        )
        self._enter_phase(run, RunPhase.FANOUT_STARTING)
        logger.info(
            "Run %s extracted %d candidates: %d created, %d deduplicated",
            run.id,
            len(candidates),
            created,
            len(dropped),
        )
        return StepResult(phase=RunPhase.DIVERGENT_EXTRACT.value, has_more=True)

    def _fanout_step(self, run: Run) -> StepResult:
        """Advance the hypotheses by one pass."""
        executed = run.current_phase
        inputs = load_inputs(self.storage, run.project_id)
        outcome = self._fanout.advance(run, inputs)
        self._enter_phase(run, RunPhase(outcome.next_phase))
        return StepResult(phase=executed.value, has_more=True, retry_after=outcome.retry_after)

    def _aggregate(self, run: Run) -> StepResult:
        """Fan-in: build the integrated result from completed hypotheses."""
        hypotheses = self.storage.list_hypotheses(run_id=run.id)
        completed = [h for h in hypotheses if h.processing_status is HypothesisStatus.COMPLETED]
        failed = [h for h in hypotheses if h.processing_status is HypothesisStatus.ERROR]
        deduped = run.progress.deduped if isinstance(run.progress, (FanoutProgress, SummaryProgress)) else 0

        if not completed:
            return self._fail_run(
                run,
                PipelineError(
                    f"All {len(hypotheses)} hypotheses failed",
                    ALL_HYPOTHESES_FAILED,
                    {"failed": len(failed)},
                ),
                RunPhase.AGGREGATE,
            )

        run.integrated_result = [
            IntegratedEntry(
                hypothesis_id=h.id,
                hypothesis_number=h.hypothesis_number,
                title=h.display_title,
                summary=h.integration_output or "",
            )
            for h in sorted(completed, key=lambda h: h.index_in_run)
        ]
        run.status = RunStatus.COMPLETED
        run.completed_at = self._clock()
        self._enter_phase(run, RunPhase.COMPLETED)
        run.progress = SummaryProgress(
            phase="completed",
            total=len(hypotheses),
            completed=len(completed),
            failed=len(failed),
            deduped=deduped,
            message=f"{len(completed)} of {len(hypotheses)} hypotheses completed",
        )
        self._cleanup_stores(run)
        logger.info("Run %s completed: %d succeeded, %d failed", run.id, len(completed), len(failed))
        return StepResult(phase=RunPhase.COMPLETED.value, has_more=False)

    # =========================================================================
    # Transitions and error handling
    # =========================================================================

    def _enter_phase(self, run: Run, phase: RunPhase) -> None:
        """Move to ``phase``, recording timings and the coarse step number."""
        if phase is run.current_phase:
            return
        now = self._clock()
        previous = run.phase_timings.get(run.current_phase.value)
        if previous is not None and previous.completed_at is None:
            previous.completed_at = now
        run.phase_timings.setdefault(phase.value, PhaseTiming(started_at=now))
        run.current_phase = phase
        run.current_step = max(run.current_step, PHASE_STEPS.get(phase, run.current_step))

    def _back_off(self, run: Run, exc: RateLimitError, phase: RunPhase) -> StepResult:
        run.rate_limit_retries += 1
        if run.rate_limit_retries > self.config.rate_limit_max_retries:
            return self._fail_run(run, exc, phase)
        delay = min(
            exc.retry_after or self.config.rate_limit_base_backoff_seconds,
            self.config.rate_limit_max_backoff_seconds,
        )
        run.next_poll_after = self._clock() + timedelta(seconds=delay)
        logger.warning(
            "Run %s rate limited in %s; retry %d in %.1fs",
            run.id,
            phase.value,
            run.rate_limit_retries,
            delay,
        )
        return StepResult(phase=phase.value, has_more=True, retry_after=delay)

    def _fail_run(self, run: Run, exc: PipelineError, phase: RunPhase) -> StepResult:
        run.status = RunStatus.ERROR
        run.error_message = exc.message
        run.error_code = exc.code
        run.completed_at = self._clock()
        run.next_poll_after = None
        self._enter_phase(run, RunPhase.ERROR)
        run.progress = FailedProgress(error_code=exc.code, failed_phase=phase.value, message=exc.message)
        self._cleanup_stores(run)
        logger.error(
            "Run %s failed in %s (%s): %s",
            run.id,
            phase.value,
            exc.code,
            exc.message,
            extra={"run_id": run.id, "error_code": exc.code, "details": exc.details},
        )
        return StepResult(phase=RunPhase.ERROR.value, has_more=False, error=exc.message)

    def _persist(self, run: Run, expected_version: int) -> None:
        """Save with a version check; on conflict adopt control fields and retry."""
        for attempt in range(1, MAX_PERSIST_ATTEMPTS + 1):
            try:
                self.storage.save_run(run, expected_version=expected_version)
                return
            except VersionConflictError:
                latest = self.storage.load_run(run.id)
                if latest is None:
                    logger.warning("Run %s disappeared while stepping; dropping step result", run.id)
                    return

            if latest.status is RunStatus.CANCELLED or not run.is_terminal:
                for name in CONTROL_FIELDS:
                    setattr(run, name, getattr(latest, name))
            logger.info(
                "Run %s changed concurrently (status=%s, attempt %d); merged control fields",
                run.id,
                latest.status.value,
                attempt,
            )
            expected_version = latest.state_version

        logger.error(
            "Run %s kept changing during the step; dropping step result after %d attempts",
            run.id,
            MAX_PERSIST_ATTEMPTS,
        )

    def _cleanup_stores(self, run: Run) -> None:
        """Delete transient stores of interactions that never completed."""
        for record in run.interactions:
            if record.store_name and record.status is not InteractionStatus.COMPLETED:
                self._delete_store(record.store_name)

    def _delete_store(self, store_name: Optional[str]) -> None:
        if not store_name:
            return
        try:
            self.gateway.delete_transient_store(store_name)
        except Exception as exc:
            logger.warning("Failed to delete transient store %s: %s", store_name, exc)
