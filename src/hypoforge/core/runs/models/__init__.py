"""Run pipeline models sub-package.

Re-exports all public symbols via ``from hypoforge.core.runs.models import <Symbol>``.
"""

from .enums import (
    PHASE_ORDER,
    POLLING_PHASES,
    QUICK_PHASES,
    REQUIRED_RESOURCE_KINDS,
    TERMINAL_HYPOTHESIS_STATUSES,
    TERMINAL_RUN_STATUSES,
    HypothesisStatus,
    InteractionStatus,
    ModelChoice,
    ResourceKind,
    RunPhase,
    RunStatus,
    max_phase,
    phase_index,
)
from .hypothesis import Hypothesis
from .progress import (
    DivergentProgress,
    ExtractionProgress,
    FailedProgress,
    FanoutProgress,
    Progress,
    QueuedProgress,
    SummaryProgress,
)
from .project import Project, Resource
from .results import FanoutOutcome, InvocationResult, RecoveryReport, StepResult
from .run import IntegratedEntry, InteractionRecord, PhaseTiming, Run

__all__ = [
    # Enums and phase helpers
    "PHASE_ORDER",
    "POLLING_PHASES",
    "QUICK_PHASES",
    "REQUIRED_RESOURCE_KINDS",
    "TERMINAL_HYPOTHESIS_STATUSES",
    "TERMINAL_RUN_STATUSES",
    "HypothesisStatus",
    "InteractionStatus",
    "ModelChoice",
    "ResourceKind",
    "RunPhase",
    "RunStatus",
    "max_phase",
    "phase_index",
    # Records
    "Hypothesis",
    "IntegratedEntry",
    "InteractionRecord",
    "PhaseTiming",
    "Project",
    "Resource",
    "Run",
    # Progress
    "DivergentProgress",
    "ExtractionProgress",
    "FailedProgress",
    "FanoutProgress",
    "Progress",
    "QueuedProgress",
    "SummaryProgress",
    # Results
    "FanoutOutcome",
    "InvocationResult",
    "RecoveryReport",
    "StepResult",
]
