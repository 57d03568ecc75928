"""Hypothesis fan-out coordinator.

Drives every hypothesis of a run through its own phase sequence
(``phase_B -> phase_C -> phase_D -> completed``) using the same
submit/poll/resume pattern as the run-level phases, keyed per hypothesis.

Concurrency is expressed as many small state machines advanced round-robin,
one unit of work each per executor call. A pass polls up to ``fanout_width``
hypotheses but makes at most one generation call. An error on one hypothesis
never touches its siblings.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from hypoforge.config.orchestration import OrchestrationConfig
from hypoforge.core.errors.pipeline import (
    ContentGenerationError,
    ExternalOperationError,
    PipelineError,
    RateLimitError,
    wrap_error,
)
from hypoforge.core.errors.pipeline import TimeoutError as OperationTimeoutError
from hypoforge.core.errors.storage import VersionConflictError

from .gateway import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    AIGateway,
    Attachment,
)
from .inputs import PipelineInputs, hypothesis_store_name
from .memory import RunStorage
from .models import (
    ExtractionProgress,
    FanoutOutcome,
    FanoutProgress,
    Hypothesis,
    HypothesisStatus,
    InteractionRecord,
    InteractionStatus,
    Run,
    RunPhase,
    SummaryProgress,
    max_phase,
)
from .prompts import (
    COMPETITIVE_PROMPT,
    EVALUATION_PROMPT,
    INTEGRATION_PROMPT,
    RESEARCH_PROMPT,
    build_hypothesis_context,
    format_prompt,
)

logger = logging.getLogger(__name__)

STEP_RESEARCH = "research"


def needs_submission(hypothesis: Hypothesis) -> bool:
    """Pending, or stuck in phase_B with neither an interaction nor output."""
    if hypothesis.processing_status is HypothesisStatus.PENDING:
        return True
    return (
        hypothesis.processing_status is HypothesisStatus.PHASE_B
        and not hypothesis.current_interaction_id
        and not hypothesis.research_output
    )


def is_researching(hypothesis: Hypothesis) -> bool:
    return (
        hypothesis.processing_status is HypothesisStatus.PHASE_B
        and bool(hypothesis.current_interaction_id)
        and not hypothesis.research_output
    )


def derive_run_phase(hypotheses: List[Hypothesis]) -> RunPhase:
    """Map hypothesis states onto the run-level fan-out phase."""
    if any(needs_submission(h) for h in hypotheses):
        return RunPhase.FANOUT_STARTING
    if any(h.processing_status is HypothesisStatus.PHASE_B for h in hypotheses):
        return RunPhase.FANOUT_PARALLEL
    if any(not h.is_terminal for h in hypotheses):
        return RunPhase.FANOUT_POLLING
    return RunPhase.AGGREGATE


class HypothesisFanoutCoordinator:
    """Advances a run's hypotheses by one bounded pass.

    Mutates ``run`` in memory (interaction records, progress); the caller
    persists it. Hypotheses are saved individually as they change.
    """

    def __init__(
        self,
        storage: RunStorage,
        gateway: AIGateway,
        config: OrchestrationConfig,
        *,
        clock: Callable[[], datetime],
    ) -> None:
        self.storage = storage
        self.gateway = gateway
        self.config = config
        self._clock = clock

    def advance(self, run: Run, inputs: PipelineInputs) -> FanoutOutcome:
        """Submit pending research and advance in-flight hypotheses.

        Returns:
            FanoutOutcome whose ``next_phase`` is never behind ``run.current_phase``
        """
        hypotheses = self.storage.list_hypotheses(run_id=run.id)
        width = self.config.fanout_width
        outcome = FanoutOutcome(next_phase=run.current_phase.value)
        touched = set()

        # Submit research while fewer than ``width`` are in flight
        in_flight = sum(1 for h in hypotheses if is_researching(h))
        for hypothesis in hypotheses:
            if in_flight >= width:
                break
            if not needs_submission(hypothesis):
                continue
            self._isolated(run, hypothesis, inputs, outcome, self._submit)
            touched.add(hypothesis.id)
            if is_researching(hypothesis):
                in_flight += 1

        # Advance up to ``width`` others, round-robin from the stored cursor.
        # Polls run at full width; at most one generation call per pass.
        cursor = run.progress.cursor if isinstance(run.progress, FanoutProgress) else 0
        if hypotheses:
            start = cursor % len(hypotheses)
            rotated = list(range(start, len(hypotheses))) + list(range(0, start))
            advanced = 0
            generated = False
            deferred: Optional[int] = None
            for position in rotated:
                if advanced >= width:
                    break
                hypothesis = hypotheses[position]
                if hypothesis.is_terminal or hypothesis.id in touched or needs_submission(hypothesis):
                    continue
                if self._needs_generation(hypothesis):
                    if generated:
                        if deferred is None:
                            deferred = position
                        continue
                    generated = True
                self._isolated(run, hypothesis, inputs, outcome, self._advance_one)
                advanced += 1
                cursor = (position + 1) % len(hypotheses)
            if deferred is not None:
                cursor = deferred

        next_phase = max_phase(run.current_phase, derive_run_phase(hypotheses))
        outcome.next_phase = next_phase.value
        run.progress = self._progress(run, hypotheses, next_phase, cursor)
        return outcome

    # ------------------------------------------------------------------
    # Error isolation
    # ------------------------------------------------------------------

    def _isolated(
        self,
        run: Run,
        hypothesis: Hypothesis,
        inputs: PipelineInputs,
        outcome: FanoutOutcome,
        action: Callable[[Run, Hypothesis, PipelineInputs, FanoutOutcome], None],
    ) -> None:
        """Run one unit of work for a hypothesis, containing its failures."""
        expected_version = hypothesis.state_version
        try:
            action(run, hypothesis, inputs, outcome)
        except RateLimitError as exc:
            self._back_off(hypothesis, exc, outcome)
        except PipelineError as exc:
            self._fail(hypothesis, exc, outcome)
        except Exception as exc:
            self._fail(hypothesis, wrap_error(exc, f"Hypothesis {hypothesis.hypothesis_number}"), outcome)

        try:
            self.storage.save_hypothesis(hypothesis, expected_version=expected_version)
        except VersionConflictError as exc:
            # Modified elsewhere (e.g. soft-deleted); the next pass re-reads it
            logger.warning("Skipping save of hypothesis %s: %s", hypothesis.id, exc)

    def _back_off(self, hypothesis: Hypothesis, exc: RateLimitError, outcome: FanoutOutcome) -> None:
        hypothesis.rate_limit_retries += 1
        if hypothesis.rate_limit_retries > self.config.rate_limit_max_retries:
            self._fail(hypothesis, exc, outcome)
            return
        delay = min(
            exc.retry_after or self.config.rate_limit_base_backoff_seconds,
            self.config.rate_limit_max_backoff_seconds,
        )
        hypothesis.next_poll_after = self._clock() + timedelta(seconds=delay)
        outcome.retry_after = delay if outcome.retry_after is None else min(outcome.retry_after, delay)
        logger.info(
            "Hypothesis %s rate limited; retry %d in %.1fs",
            hypothesis.id,
            hypothesis.rate_limit_retries,
            delay,
        )

    def _fail(self, hypothesis: Hypothesis, exc: PipelineError, outcome: FanoutOutcome) -> None:
        hypothesis.error_message = exc.message
        hypothesis.error_code = exc.code
        hypothesis.processing_status = HypothesisStatus.ERROR
        hypothesis.next_poll_after = None
        outcome.failed += 1
        logger.warning(
            "Hypothesis %s failed (%s): %s",
            hypothesis.id,
            exc.code,
            exc.message,
            extra={"hypothesis_id": hypothesis.id, "error_code": exc.code},
        )

    def _backing_off(self, hypothesis: Hypothesis) -> bool:
        return hypothesis.next_poll_after is not None and self._clock() < hypothesis.next_poll_after

    def _needs_generation(self, hypothesis: Hypothesis) -> bool:
        return hypothesis.processing_status in (
            HypothesisStatus.PHASE_C,
            HypothesisStatus.PHASE_D,
        ) and not self._backing_off(hypothesis)

    def _succeeded(self, hypothesis: Hypothesis) -> None:
        hypothesis.rate_limit_retries = 0
        hypothesis.next_poll_after = None

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    def _submit(self, run: Run, hypothesis: Hypothesis, inputs: PipelineInputs, outcome: FanoutOutcome) -> None:
        """Start deep research for one hypothesis (phase_B). One-shot."""
        if hypothesis.current_interaction_id:
            hypothesis.processing_status = HypothesisStatus.PHASE_B
            return
        if self._backing_off(hypothesis):
            return

        context = build_hypothesis_context(
            title=hypothesis.display_title,
            hypothesis_id=hypothesis.id,
            summary=hypothesis.summary,
            research_output=None,
            target_specification=inputs.target_specification,
            technical_assets=inputs.technical_assets,
        )
        store_name = hypothesis_store_name(run.id, hypothesis.hypothesis_number)
        interaction_id = self.gateway.create_interaction(
            RESEARCH_PROMPT,
            [*inputs.attachments, Attachment(name="hypothesis_context", content=context)],
            store_name=store_name,
            model_choice=run.model_choice.value,
        )

        now = self._clock()
        hypothesis.current_interaction_id = interaction_id
        hypothesis.interaction_started_at = now
        hypothesis.processing_status = HypothesisStatus.PHASE_B
        self._succeeded(hypothesis)
        run.interactions.append(
            InteractionRecord(
                step=STEP_RESEARCH,
                interaction_id=interaction_id,
                hypothesis_id=hypothesis.id,
                store_name=store_name,
                started_at=now,
            )
        )
        outcome.submitted += 1
        logger.info("Submitted research for hypothesis %s: %s", hypothesis.id, interaction_id)

    def _advance_one(self, run: Run, hypothesis: Hypothesis, inputs: PipelineInputs, outcome: FanoutOutcome) -> None:
        if self._backing_off(hypothesis):
            return
        status = hypothesis.processing_status
        if status is HypothesisStatus.PHASE_B:
            self._poll_research(run, hypothesis)
        elif status is HypothesisStatus.PHASE_C:
            self._evaluate(run, hypothesis, inputs)
        elif status is HypothesisStatus.PHASE_D:
            self._compete_and_integrate(run, hypothesis, inputs)
        outcome.advanced += 1

    def _poll_research(self, run: Run, hypothesis: Hypothesis) -> None:
        interaction_id = hypothesis.current_interaction_id
        record = run.find_interaction(STEP_RESEARCH, hypothesis.id)
        started = hypothesis.interaction_started_at
        timeout = self.config.operation_timeout_seconds
        if started is not None and (self._clock() - started).total_seconds() > timeout:
            if record is not None:
                record.status = InteractionStatus.FAILED
            raise OperationTimeoutError(f"research for hypothesis {hypothesis.hypothesis_number}", timeout)

        snapshot = self.gateway.get_interaction(interaction_id)
        self._succeeded(hypothesis)

        if snapshot.status == STATUS_COMPLETED:
            text = snapshot.final_text
            if not text.strip():
                raise ExternalOperationError(
                    "research completed without output", step=STEP_RESEARCH, interaction_id=interaction_id
                )
            hypothesis.research_output = text
            hypothesis.processing_status = HypothesisStatus.PHASE_C
            if record is not None:
                record.status = InteractionStatus.COMPLETED
                record.completed_at = self._clock()
            self._delete_store(hypothesis_store_name(run.id, hypothesis.hypothesis_number))
            logger.info("Research completed for hypothesis %s", hypothesis.id)

        elif snapshot.status in (STATUS_FAILED, STATUS_CANCELLED):
            if record is not None:
                record.status = InteractionStatus.FAILED
                record.completed_at = self._clock()
            raise ExternalOperationError(
                snapshot.error or f"research interaction {snapshot.status}",
                step=STEP_RESEARCH,
                interaction_id=interaction_id,
            )

    def _evaluate(self, run: Run, hypothesis: Hypothesis, inputs: PipelineInputs) -> None:
        prompt = format_prompt(EVALUATION_PROMPT, {"context": self._context(hypothesis, inputs)})
        hypothesis.evaluation_output = self._generate(prompt, run, step="evaluation")
        hypothesis.processing_status = HypothesisStatus.PHASE_D

    def _compete_and_integrate(self, run: Run, hypothesis: Hypothesis, inputs: PipelineInputs) -> None:
        context = self._context(hypothesis, inputs)
        if not hypothesis.competitive_output:
            prompt = format_prompt(
                COMPETITIVE_PROMPT,
                {"context": context, "evaluation": hypothesis.evaluation_output or ""},
            )
            hypothesis.competitive_output = self._generate(prompt, run, step="competitive")
            return

        prompt = format_prompt(
            INTEGRATION_PROMPT,
            {
                "context": context,
                "evaluation": hypothesis.evaluation_output or "",
                "competitive": hypothesis.competitive_output,
            },
        )
        hypothesis.integration_output = self._generate(prompt, run, step="integration")
        hypothesis.processing_status = HypothesisStatus.COMPLETED
        logger.info("Hypothesis %s completed", hypothesis.id)

    def _generate(self, prompt: str, run: Run, *, step: str) -> str:
        text = self.gateway.generate_content(prompt, model_choice=run.model_choice.value)
        if not text or not text.strip():
            raise ContentGenerationError("empty response", step=step)
        return text

    def _context(self, hypothesis: Hypothesis, inputs: PipelineInputs) -> str:
        return build_hypothesis_context(
            title=hypothesis.display_title,
            hypothesis_id=hypothesis.id,
            summary=hypothesis.summary,
            research_output=hypothesis.research_output,
            target_specification=inputs.target_specification,
            technical_assets=inputs.technical_assets,
        )

    def _delete_store(self, store_name: str) -> None:
        try:
            self.gateway.delete_transient_store(store_name)
        except Exception as exc:
            logger.warning("Failed to delete transient store %s: %s", store_name, exc)

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _progress(
        self,
        run: Run,
        hypotheses: List[Hypothesis],
        phase: RunPhase,
        cursor: int,
    ) -> Union[FanoutProgress, SummaryProgress]:
        deduped = 0
        if isinstance(run.progress, (ExtractionProgress, FanoutProgress, SummaryProgress)):
            deduped = run.progress.deduped
        completed = sum(1 for h in hypotheses if h.processing_status is HypothesisStatus.COMPLETED)
        failed = sum(1 for h in hypotheses if h.processing_status is HypothesisStatus.ERROR)
        message = f"{completed}/{len(hypotheses)} hypotheses completed, {failed} failed"

        if phase is RunPhase.AGGREGATE:
            return SummaryProgress(
                phase="aggregate",
                total=len(hypotheses),
                completed=completed,
                failed=failed,
                deduped=deduped,
                message=message,
            )
        return FanoutProgress(
            phase=phase.value,
            total=len(hypotheses),
            pending=sum(1 for h in hypotheses if needs_submission(h)),
            in_flight=sum(1 for h in hypotheses if is_researching(h)),
            completed=completed,
            failed=failed,
            deduped=deduped,
            cursor=cursor,
            message=message,
        )
