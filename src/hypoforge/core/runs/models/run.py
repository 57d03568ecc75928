"""Run record model."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .enums import (
    TERMINAL_RUN_STATUSES,
    InteractionStatus,
    ModelChoice,
    RunPhase,
    RunStatus,
)
from .progress import Progress, QueuedProgress


class InteractionRecord(BaseModel):
    """One external research interaction started on behalf of a run."""

    step: str = Field(..., description="Pipeline step that started the interaction (divergent, research)")
    interaction_id: str = Field(..., description="Gateway interaction identifier")
    hypothesis_id: Optional[str] = Field(None, description="Hypothesis the interaction belongs to, if any")
    store_name: Optional[str] = Field(None, description="Transient attachment store scoped to the interaction")
    status: InteractionStatus = Field(default=InteractionStatus.RUNNING, description="Last known status")
    started_at: datetime = Field(..., description="When the interaction was submitted")
    completed_at: Optional[datetime] = Field(None, description="When the interaction finished")


class PhaseTiming(BaseModel):
    """Wall-clock span spent in one phase."""

    started_at: datetime = Field(..., description="First time the phase was entered")
    completed_at: Optional[datetime] = Field(None, description="When the run left the phase")


class IntegratedEntry(BaseModel):
    """One completed hypothesis summarized into the run's integrated result."""

    hypothesis_id: str = Field(..., description="Hypothesis identifier")
    hypothesis_number: int = Field(..., ge=1, description="1-based hypothesis number")
    title: str = Field(..., description="Display title")
    summary: str = Field(default="", description="Integration output for the hypothesis")


class Run(BaseModel):
    """
    One pipeline execution for a project.

    Mutated only by the step executor and run control. Serialized with
    ``by_alias=True`` (the overridden ``model_dump`` defaults to this) so
    the persisted JSON carries ``_schema_version``.
    """

    schema_version: int = Field(default=1, alias="_schema_version", description="Schema version")

    # Identity
    id: str = Field(..., description="ULID-format run identifier")
    project_id: str = Field(..., description="Owning project")
    job_name: Optional[str] = Field(None, description="Optional label for the run")

    # Configuration
    hypothesis_count: int = Field(default=5, ge=1, description="Maximum candidates to fan out")
    loop_count: int = Field(default=1, ge=1, description="Total loops requested")
    loop_index: int = Field(default=0, ge=0, description="0-based loop this run executes")
    model_choice: ModelChoice = Field(default=ModelChoice.PRO, description="Research model tier")

    # Lifecycle
    status: RunStatus = Field(default=RunStatus.PENDING, description="Run status")
    current_phase: RunPhase = Field(default=RunPhase.PENDING, description="Fine-grained phase")
    current_step: int = Field(default=0, ge=0, le=5, description="Coarse step number")
    current_loop: int = Field(default=1, ge=1, description="1-based loop counter")
    total_loops: int = Field(default=1, ge=1, description="Loops planned")

    # External interactions (append-only)
    interactions: List[InteractionRecord] = Field(default_factory=list, description="Interaction records")

    # Outputs
    divergent_output: Optional[str] = Field(None, description="Raw divergent research output")
    integrated_result: List[IntegratedEntry] = Field(
        default_factory=list, description="Aggregated result over completed hypotheses"
    )

    # Progress
    progress: Progress = Field(default_factory=QueuedProgress, description="Phase-specific progress")
    phase_timings: Dict[str, PhaseTiming] = Field(default_factory=dict, description="Time spent per phase")
    resume_count: int = Field(default=0, ge=0, description="Times the run was resumed (diagnostic)")

    # Errors and backoff
    error_message: Optional[str] = Field(None, description="Last terminal or control message")
    error_code: Optional[str] = Field(None, description="Stable code of the terminal error")
    next_poll_after: Optional[datetime] = Field(None, description="Earliest time to call the gateway again")
    rate_limit_retries: int = Field(default=0, ge=0, description="Consecutive rate-limit backoffs")

    # Timestamps
    created_at: datetime = Field(..., description="When the run was created")
    updated_at: datetime = Field(..., description="When the run was last written")
    started_at: Optional[datetime] = Field(None, description="When the first step ran")
    paused_at: Optional[datetime] = Field(None, description="When the run was paused")
    completed_at: Optional[datetime] = Field(None, description="When the run reached a terminal status")

    state_version: int = Field(default=1, ge=1, description="Monotonic state version")

    model_config = {
        "populate_by_name": True,
    }

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def find_interaction(self, step: str, hypothesis_id: Optional[str] = None) -> Optional[InteractionRecord]:
        """Return the most recent interaction recorded for ``step`` (and hypothesis)."""
        for record in reversed(self.interactions):
            if record.step == step and record.hypothesis_id == hypothesis_id:
                return record
        return None

    def model_dump(self, *, by_alias: bool = True, **kwargs: Any) -> Dict[str, Any]:
        """Override to default ``by_alias=True`` for correct _schema_version serialization."""
        return super().model_dump(by_alias=by_alias, **kwargs)
