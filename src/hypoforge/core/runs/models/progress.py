"""Progress metadata recorded on a run.

Progress is a closed union discriminated by ``phase`` so each phase's shape
is fixed. ``Run.progress`` is annotated with ``Progress``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _ProgressBase(BaseModel):
    message: str = Field(default="", description="Human-readable progress note")
    updated_at: datetime = Field(default_factory=_utc_now, description="When progress was recorded")


class QueuedProgress(_ProgressBase):
    """Run created, no work done yet."""

    phase: Literal["pending"] = "pending"


class DivergentProgress(_ProgressBase):
    """Divergent research submitted or being polled."""

    phase: Literal["divergent_starting", "divergent_polling"]
    interaction_id: Optional[str] = Field(None, description="Divergent interaction being tracked")
    polls: int = Field(default=0, ge=0, description="Status checks made so far")


class ExtractionProgress(_ProgressBase):
    """Outcome of turning divergent output into hypotheses."""

    phase: Literal["divergent_extract"] = "divergent_extract"
    produced: int = Field(default=0, ge=0, description="Candidates parsed from output")
    deduped: int = Field(default=0, ge=0, description="Candidates dropped as duplicates")
    created: int = Field(default=0, ge=0, description="Hypotheses created")


class FanoutProgress(_ProgressBase):
    """Per-hypothesis counts during fan-out."""

    phase: Literal["fanout_starting", "fanout_parallel", "fanout_polling"]
    total: int = Field(default=0, ge=0, description="Active hypotheses in the run")
    pending: int = Field(default=0, ge=0, description="Hypotheses not yet submitted")
    in_flight: int = Field(default=0, ge=0, description="Hypotheses with research outstanding")
    completed: int = Field(default=0, ge=0, description="Hypotheses completed")
    failed: int = Field(default=0, ge=0, description="Hypotheses in error")
    deduped: int = Field(default=0, ge=0, description="Candidates dropped at extraction")
    cursor: int = Field(default=0, ge=0, description="Round-robin start index for the next advance")


class SummaryProgress(_ProgressBase):
    """Final tallies once fan-out has drained."""

    phase: Literal["aggregate", "completed"]
    total: int = Field(default=0, ge=0, description="Active hypotheses in the run")
    completed: int = Field(default=0, ge=0, description="Hypotheses completed")
    failed: int = Field(default=0, ge=0, description="Hypotheses in error")
    deduped: int = Field(default=0, ge=0, description="Candidates dropped at extraction")


class FailedProgress(_ProgressBase):
    """Run ended in error."""

    phase: Literal["error"] = "error"
    error_code: Optional[str] = Field(None, description="Stable error code")
    failed_phase: Optional[str] = Field(None, description="Phase that was executing when the run failed")


Progress = Annotated[
    Union[
        QueuedProgress,
        DivergentProgress,
        ExtractionProgress,
        FanoutProgress,
        SummaryProgress,
        FailedProgress,
    ],
    Field(discriminator="phase"),
]
