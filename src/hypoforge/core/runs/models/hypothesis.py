"""Hypothesis (fan-out candidate) record model."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from .enums import TERMINAL_HYPOTHESIS_STATUSES, HypothesisStatus


class Hypothesis(BaseModel):
    """
    One fan-out branch produced by the divergent phase.

    Belongs to at most one run (``run_id`` becomes None when the run is
    deleted) and always to a project, where it takes part in cross-run
    deduplication until soft-deleted.
    """

    schema_version: int = Field(default=1, alias="_schema_version", description="Schema version")

    # Identity
    id: str = Field(..., description="uuid4 hypothesis identifier")
    project_id: str = Field(..., description="Owning project")
    run_id: Optional[str] = Field(None, description="Run that created the hypothesis; None once orphaned")
    hypothesis_number: int = Field(..., ge=1, description="1-based sequence number within the run")
    index_in_run: int = Field(..., ge=0, description="0-based position within the run")

    # Content
    display_title: str = Field(..., description="Short title")
    summary: str = Field(default="", description="Summary parsed from divergent output")
    content_hash: str = Field(..., description="Normalized content hash used for deduplication")

    # Phase outputs
    research_output: Optional[str] = Field(None, description="Deep research report (phase_B)")
    evaluation_output: Optional[str] = Field(None, description="Evaluation verdict (phase_C)")
    competitive_output: Optional[str] = Field(None, description="Competitive analysis (phase_D)")
    integration_output: Optional[str] = Field(None, description="Integrated summary (phase_D)")

    # Processing
    processing_status: HypothesisStatus = Field(default=HypothesisStatus.PENDING, description="Processing status")
    current_interaction_id: Optional[str] = Field(None, description="Outstanding research interaction")
    interaction_started_at: Optional[datetime] = Field(None, description="When the interaction was submitted")
    next_poll_after: Optional[datetime] = Field(None, description="Earliest time to call the gateway again")
    rate_limit_retries: int = Field(default=0, ge=0, description="Consecutive rate-limit backoffs")
    error_message: Optional[str] = Field(None, description="Error recorded on this hypothesis")
    error_code: Optional[str] = Field(None, description="Stable error code")

    # Lifecycle
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete marker")
    created_at: datetime = Field(..., description="When the hypothesis was created")
    updated_at: datetime = Field(..., description="When the hypothesis was last written")

    state_version: int = Field(default=1, ge=1, description="Monotonic state version")

    @model_validator(mode="after")
    def validate_phase_prerequisites(self) -> "Hypothesis":
        """Later phases require the outputs of earlier ones."""
        status = self.processing_status
        if status in (HypothesisStatus.PHASE_C, HypothesisStatus.PHASE_D) and not self.research_output:
            raise ValueError(f"processing_status '{status.value}' requires research_output")
        if status is HypothesisStatus.PHASE_D and not self.evaluation_output:
            raise ValueError("processing_status 'phase_D' requires evaluation_output")
        return self

    model_config = {
        "populate_by_name": True,
        "validate_assignment": True,
    }

    @property
    def is_terminal(self) -> bool:
        return self.processing_status in TERMINAL_HYPOTHESIS_STATUSES

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def model_dump(self, *, by_alias: bool = True, **kwargs: Any) -> Dict[str, Any]:
        """Override to default ``by_alias=True`` for correct _schema_version serialization."""
        return super().model_dump(by_alias=by_alias, **kwargs)
