"""Stale-run watchdog.

A run whose continuation was lost (all delivery attempts failed, or the
host died between persisting and dispatching) stays ``running`` with an
ageing ``updated_at``. The watchdog finds such runs and delivers a fresh
continuation synchronously, so the result of each attempt can be reported.

Meant to be triggered periodically (cron calling ``POST /runs/recover`` or
``hypoforge recover``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from .memory import RunStorage
from .models import RecoveryReport, RunStatus
from .scheduler import ContinuationDispatcher

logger = logging.getLogger(__name__)

RECOVERABLE_STATUSES = (RunStatus.RUNNING, RunStatus.PENDING)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecoveryWatchdog:
    """Re-triggers running or pending runs that stopped making progress."""

    def __init__(
        self,
        storage: RunStorage,
        dispatcher: ContinuationDispatcher,
        stale_after_seconds: float = 300.0,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.storage = storage
        self.dispatcher = dispatcher
        self.stale_after_seconds = stale_after_seconds
        self._clock = clock or _utc_now

    def scan(self) -> RecoveryReport:
        cutoff = self._clock() - timedelta(seconds=self.stale_after_seconds)
        stale = [run for run in self.storage.list_runs(RECOVERABLE_STATUSES) if run.updated_at < cutoff]

        report = RecoveryReport(checked=len(stale))
        for run in stale:
            entry: Dict[str, Any] = {"run_id": run.id, "status": run.status.value, "resumed": False}
            try:
                entry["resumed"] = bool(self.dispatcher.send(run.id))
                if not entry["resumed"]:
                    entry["error"] = "continuation not delivered"
            except Exception as exc:
                logger.warning("Recovery of run %s failed: %s", run.id, exc)
                entry["error"] = str(exc)
            report.results.append(entry)

        if stale:
            logger.info("Recovery scan: %d stale runs, %d resumed", report.checked, report.resumed)
        return report
