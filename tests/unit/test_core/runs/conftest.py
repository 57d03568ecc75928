"""Shared fixtures for run pipeline unit tests."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from hypoforge.config.orchestration import OrchestrationConfig
from hypoforge.core.runs.dedup import compute_content_hash
from hypoforge.core.runs.gateway import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    InteractionSnapshot,
)
from hypoforge.core.runs.memory import RunStorage
from hypoforge.core.runs.models import (
    Hypothesis,
    HypothesisStatus,
    Project,
    Resource,
    ResourceKind,
    Run,
    RunPhase,
    RunStatus,
)

PROJECT_ID = "proj-001"

SAMPLE_DIVERGENT_OUTPUT = """Research overview for the requested market.

【Hypothesis 1】Solid-state electrolyte films for wearables
Thin sulfide electrolyte films let flexible batteries reach consumer wearables.

【Hypothesis 2】Recycled carbon fibre for drone frames
Pyrolysis-recovered fibre undercuts virgin fibre cost for light drone frames.

【Hypothesis 3】Self-healing coatings for offshore wind
Microcapsule coatings extend blade maintenance intervals at offshore sites.
"""


# =============================================================================
# Factories
# =============================================================================


def make_run(
    *,
    run_id: Optional[str] = None,
    project_id: str = PROJECT_ID,
    status: RunStatus = RunStatus.PENDING,
    current_phase: RunPhase = RunPhase.PENDING,
    hypothesis_count: int = 3,
    created_at: Optional[datetime] = None,
    updated_at: Optional[datetime] = None,
    **kwargs: Any,
) -> Run:
    """Factory for run records with sensible defaults."""
    now = datetime.now(timezone.utc)
    return Run(
        id=run_id or f"run{uuid.uuid4().hex[:12]}",
        project_id=project_id,
        status=status,
        current_phase=current_phase,
        hypothesis_count=hypothesis_count,
        created_at=created_at or now,
        updated_at=updated_at or now,
        **kwargs,
    )


def make_hypothesis(
    *,
    hypothesis_id: Optional[str] = None,
    project_id: str = PROJECT_ID,
    run_id: Optional[str] = None,
    number: int = 1,
    title: Optional[str] = None,
    summary: str = "",
    processing_status: HypothesisStatus = HypothesisStatus.PENDING,
    **kwargs: Any,
) -> Hypothesis:
    """Factory for hypothesis records; the content hash follows title and summary."""
    now = datetime.now(timezone.utc)
    title = title or f"Hypothesis title {number}"
    kwargs.setdefault("content_hash", compute_content_hash(title, summary))
    return Hypothesis(
        id=hypothesis_id or str(uuid.uuid4()),
        project_id=project_id,
        run_id=run_id,
        hypothesis_number=number,
        index_in_run=number - 1,
        display_title=title,
        summary=summary,
        processing_status=processing_status,
        created_at=now,
        updated_at=now,
        **kwargs,
    )


def make_project(storage: RunStorage, project_id: str = PROJECT_ID, *, with_resources: bool = True) -> Project:
    """Save a project carrying both required input documents."""
    now = datetime.now(timezone.utc)
    resources = []
    if with_resources:
        resources = [
            Resource(
                id="res-spec",
                kind=ResourceKind.TARGET_SPECIFICATION,
                name="target.md",
                content="Target market: advanced materials for consumer hardware.",
            ),
            Resource(
                id="res-assets",
                kind=ResourceKind.TECHNICAL_ASSETS,
                name="assets.md",
                content="Assets: thin-film deposition, fibre recovery, polymer chemistry.",
            ),
        ]
    project = Project(id=project_id, name="Test project", resources=resources, created_at=now, updated_at=now)
    storage.save_project(project)
    return project


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Settable UTC clock for executor and watchdog tests."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeGateway:
    """In-memory AI gateway.

    Interactions complete after ``polls_to_complete`` in-progress polls.
    Stores ending in ``-divergent`` return ``divergent_output``; every other
    store returns a research report. Errors queued in ``create_errors``,
    ``poll_errors`` and ``generate_errors`` are raised in order.
    """

    def __init__(
        self,
        *,
        divergent_output: str = SAMPLE_DIVERGENT_OUTPUT,
        polls_to_complete: int = 0,
    ) -> None:
        self.divergent_output = divergent_output
        self.polls_to_complete = polls_to_complete
        self.created: List[Dict[str, Any]] = []
        self.polled: List[str] = []
        self.generated: List[str] = []
        self.deleted_stores: List[str] = []
        self.create_errors: List[Exception] = []
        self.poll_errors: List[Exception] = []
        self.generate_errors: List[Exception] = []
        self.failing_stores: Dict[str, str] = {}
        self.on_poll: Optional[Callable[[str], None]] = None
        self._interactions: Dict[str, Dict[str, Any]] = {}

    def create_interaction(self, prompt, attachments, *, store_name=None, model_choice=None) -> str:
        if self.create_errors:
            raise self.create_errors.pop(0)
        interaction_id = f"int-{len(self.created) + 1}"
        self.created.append(
            {
                "id": interaction_id,
                "prompt": prompt,
                "attachments": [a.name for a in attachments],
                "store_name": store_name,
                "model_choice": model_choice,
            }
        )
        self._interactions[interaction_id] = {"store_name": store_name or "", "polls": 0}
        return interaction_id

    def get_interaction(self, interaction_id: str) -> InteractionSnapshot:
        if self.on_poll is not None:
            self.on_poll(interaction_id)
        if self.poll_errors:
            raise self.poll_errors.pop(0)
        self.polled.append(interaction_id)
        state = self._interactions[interaction_id]
        state["polls"] += 1
        store = state["store_name"]
        if store in self.failing_stores:
            return InteractionSnapshot(status=STATUS_FAILED, error=self.failing_stores[store])
        if state["polls"] <= self.polls_to_complete:
            return InteractionSnapshot(status=STATUS_IN_PROGRESS)
        text = self.divergent_output if store.endswith("-divergent") else f"Research report for {store}"
        return InteractionSnapshot(status=STATUS_COMPLETED, outputs=[{"type": "text", "text": text}])

    def delete_transient_store(self, store_name: str) -> None:
        self.deleted_stores.append(store_name)

    def generate_content(self, prompt: str, *, model_choice=None) -> str:
        if self.generate_errors:
            raise self.generate_errors.pop(0)
        self.generated.append(prompt)
        return f"Generated section {len(self.generated)}"

    @property
    def research_submissions(self) -> List[Dict[str, Any]]:
        return [c for c in self.created if not (c["store_name"] or "").endswith("-divergent")]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def storage(tmp_path) -> RunStorage:
    return RunStorage(tmp_path / "store")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def orchestration_config() -> OrchestrationConfig:
    return OrchestrationConfig(
        poll_interval_seconds=0.0,
        structure_with_model=False,
        run_lock_timeout_seconds=0.05,
    )


@pytest.fixture
def project(storage) -> Project:
    return make_project(storage)
