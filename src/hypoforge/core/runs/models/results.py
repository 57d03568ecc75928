"""Result types returned by the executor, scheduler and watchdog."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class StepResult:
    """Outcome of one ``execute_next_step`` call.

    Attributes:
        phase: Phase that was executed, or the terminal phase the step ended in
        has_more: Whether further calls are needed
        error: Terminal error message, if the run failed
        retry_after: Seconds the caller should wait before the next call
    """

    phase: str
    has_more: bool
    error: Optional[str] = None
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one scheduler invocation."""

    run_id: str
    phase: str
    has_more: bool
    error: Optional[str]
    iterations: int
    elapsed_ms: int
    continuation_scheduled: bool = False

    def to_wire(self) -> Dict[str, Any]:
        """Camel-cased body for the process endpoint."""
        return {
            "runId": self.run_id,
            "phase": self.phase,
            "hasMore": self.has_more,
            "error": self.error,
            "iterations": self.iterations,
            "elapsedMs": self.elapsed_ms,
        }


@dataclass
class FanoutOutcome:
    """What one fan-out pass did and which run phase follows."""

    next_phase: str
    submitted: int = 0
    advanced: int = 0
    failed: int = 0
    retry_after: Optional[float] = None


@dataclass
class RecoveryReport:
    """Result of one watchdog scan."""

    checked: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def resumed(self) -> int:
        return sum(1 for entry in self.results if entry.get("resumed"))
