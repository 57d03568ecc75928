"""Enums for the run pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Union


class RunStatus(str, Enum):
    """Run lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


# Canonical set of terminal statuses; import from here instead of redefining.
TERMINAL_RUN_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.CANCELLED})


class RunPhase(str, Enum):
    """Fine-grained phase of a run's state machine.

    Declaration order is the pipeline order; ``ERROR`` sits outside it.
    """

    PENDING = "pending"
    DIVERGENT_STARTING = "divergent_starting"
    DIVERGENT_POLLING = "divergent_polling"
    DIVERGENT_EXTRACT = "divergent_extract"
    FANOUT_STARTING = "fanout_starting"
    FANOUT_PARALLEL = "fanout_parallel"
    FANOUT_POLLING = "fanout_polling"
    AGGREGATE = "aggregate"
    COMPLETED = "completed"
    ERROR = "error"


PHASE_ORDER = (
    RunPhase.PENDING,
    RunPhase.DIVERGENT_STARTING,
    RunPhase.DIVERGENT_POLLING,
    RunPhase.DIVERGENT_EXTRACT,
    RunPhase.FANOUT_STARTING,
    RunPhase.FANOUT_PARALLEL,
    RunPhase.FANOUT_POLLING,
    RunPhase.AGGREGATE,
    RunPhase.COMPLETED,
)

# Phases that only check status or do bookkeeping; safe to loop synchronously.
QUICK_PHASES = frozenset(
    {
        RunPhase.DIVERGENT_POLLING,
        RunPhase.DIVERGENT_EXTRACT,
        RunPhase.FANOUT_PARALLEL,
        RunPhase.FANOUT_POLLING,
        RunPhase.AGGREGATE,
    }
)

POLLING_PHASES = frozenset(
    {
        RunPhase.DIVERGENT_POLLING,
        RunPhase.FANOUT_PARALLEL,
        RunPhase.FANOUT_POLLING,
    }
)


def phase_index(phase: Union[RunPhase, str]) -> int:
    """Position of ``phase`` in ``PHASE_ORDER``.

    ``error`` ranks after every pipeline phase so it never compares as a
    regression.
    """
    phase = RunPhase(phase)
    if phase is RunPhase.ERROR:
        return len(PHASE_ORDER)
    return PHASE_ORDER.index(phase)


def max_phase(current: RunPhase, derived: RunPhase) -> RunPhase:
    """Return whichever of two phases is further along."""
    return derived if phase_index(derived) > phase_index(current) else current


class HypothesisStatus(str, Enum):
    """Processing status of one fan-out branch.

    ``phase_B`` is deep research, ``phase_C`` evaluation and ``phase_D``
    competitive analysis followed by integration.
    """

    PENDING = "pending"
    PHASE_B = "phase_B"
    PHASE_C = "phase_C"
    PHASE_D = "phase_D"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_HYPOTHESIS_STATUSES = frozenset({HypothesisStatus.COMPLETED, HypothesisStatus.ERROR})


class InteractionStatus(str, Enum):
    """Status of a recorded external interaction."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ModelChoice(str, Enum):
    """Model tier used for research interactions."""

    PRO = "pro"
    FLASH = "flash"


class ResourceKind(str, Enum):
    """Kinds of project input resource the pipeline consumes."""

    TARGET_SPECIFICATION = "target_specification"
    TECHNICAL_ASSETS = "technical_assets"


REQUIRED_RESOURCE_KINDS = (ResourceKind.TARGET_SPECIFICATION, ResourceKind.TECHNICAL_ASSETS)
