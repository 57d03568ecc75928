"""
Resumable hypothesis pipeline runs.

This package drives multi-stage research runs across many short-lived
invocations, including:
- Durable run, hypothesis and project records with optimistic versioning
- A step executor that advances a run by one unit of work per call
- Per-hypothesis fan-out with error isolation
- Budgeted invocation scheduling with self-chaining continuations
- Pause, resume, stop, nudge and stale-run recovery

Key modules:
- models: Pydantic models for runs, hypotheses, projects and progress
- memory: File-backed run store
- executor: Step executor (phase table)
- fanout: Hypothesis fan-out coordinator
- scheduler: Invocation scheduler
- continuation: Continuation dispatchers
- control: Run control operations
- recovery: Stale-run watchdog
"""

from .continuation import DeferredContinuationDispatcher, HttpContinuationDispatcher
from .control import RunControl, run_view
from .executor import StepExecutor
from .fanout import HypothesisFanoutCoordinator
from .gateway import AIGateway, Attachment, HttpAIGateway, InteractionSnapshot
from .lifecycle import create_run, upsert_project_resource
from .memory import RunStorage
from .models import (
    Hypothesis,
    HypothesisStatus,
    InvocationResult,
    Project,
    RecoveryReport,
    Run,
    RunPhase,
    RunStatus,
    StepResult,
)
from .recovery import RecoveryWatchdog
from .scheduler import ContinuationDispatcher, InvocationScheduler

__all__ = [
    # Storage
    "RunStorage",
    # Gateway
    "AIGateway",
    "Attachment",
    "HttpAIGateway",
    "InteractionSnapshot",
    # Execution
    "StepExecutor",
    "HypothesisFanoutCoordinator",
    "InvocationScheduler",
    "ContinuationDispatcher",
    "HttpContinuationDispatcher",
    "DeferredContinuationDispatcher",
    # Control
    "RunControl",
    "RecoveryWatchdog",
    "create_run",
    "upsert_project_resource",
    "run_view",
    # Models
    "Hypothesis",
    "HypothesisStatus",
    "InvocationResult",
    "Project",
    "RecoveryReport",
    "Run",
    "RunPhase",
    "RunStatus",
    "StepResult",
]
