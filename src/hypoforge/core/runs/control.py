"""Run control: pause, resume, stop and nudge.

Each operation returns a response-v2 envelope dict. Writes are conditional
on the ``state_version`` read at the start of the operation, so a control
call that races the executor or another control call fails with
``VERSION_CONFLICT`` instead of silently overwriting.

Valid transitions:
    pause:  running -> paused
    resume: paused -> running (dispatches a continuation)
    stop:   running | paused -> cancelled (terminal)
    nudge:  running -> running (dispatches a continuation); no-op otherwise
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from hypoforge.core.context import get_correlation_id
from hypoforge.core.errors.storage import VersionConflictError
from hypoforge.core.responses import (
    ErrorCode,
    ErrorType,
    error_response,
    not_found_error,
    success_response,
)

from .memory import RunStorage
from .models import Run, RunStatus
from .scheduler import ContinuationDispatcher

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Stopped by user"


def run_view(run: Run) -> Dict[str, Any]:
    """JSON-ready representation of a run for responses."""
    return run.model_dump(mode="json")


def _request_id() -> Optional[str]:
    return get_correlation_id() or None


def _invalid_transition_response(
    action: str,
    current_status: str,
    target_status: str,
    reason: Optional[str] = None,
) -> dict:
    return asdict(
        error_response(
            f"Invalid state transition: {current_status} -> {target_status}",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            error_type=ErrorType.VALIDATION,
            request_id=_request_id(),
            details={
                "action": action,
                "current_status": current_status,
                "target_status": target_status,
                "reason": reason,
                "hint": "Check run status before attempting transition",
            },
        )
    )


class RunControl:
    """User-facing lifecycle operations on runs."""

    def __init__(self, storage: RunStorage, dispatcher: ContinuationDispatcher) -> None:
        self.storage = storage
        self.dispatcher = dispatcher

    def _resolve(self, run_id: str) -> Tuple[Optional[Run], Optional[dict]]:
        run = self.storage.load_run(run_id)
        if run is None:
            return None, asdict(
                not_found_error("Run", run_id, error_code=ErrorCode.RUN_NOT_FOUND, request_id=_request_id())
            )
        return run, None

    def _save(self, run: Run, expected_version: int, action: str) -> Optional[dict]:
        """Save with optimistic version check; error envelope on conflict."""
        try:
            self.storage.save_run(run, expected_version=expected_version)
            return None
        except VersionConflictError as exc:
            logger.warning("Version conflict on %s: %s", action, exc)
            return asdict(
                error_response(
                    "Concurrent modification detected: run was modified by another actor",
                    error_code=ErrorCode.VERSION_CONFLICT,
                    error_type=ErrorType.CONFLICT,
                    request_id=_request_id(),
                    details={
                        "action": action,
                        "run_id": run.id,
                        "expected_version": exc.expected_version,
                        "actual_version": exc.actual_version,
                        "remediation": "Reload run state and retry the operation",
                    },
                )
            )

    def pause(self, run_id: str) -> dict:
        run, err = self._resolve(run_id)
        if err:
            return err

        if run.status is not RunStatus.RUNNING:
            return _invalid_transition_response(
                "pause",
                run.status.value,
                RunStatus.PAUSED.value,
                reason="Only running runs can be paused",
            )

        expected_version = run.state_version
        run.status = RunStatus.PAUSED
        run.paused_at = datetime.now(timezone.utc)
        err = self._save(run, expected_version, "pause")
        if err:
            return err

        logger.info("Paused run %s at %s", run.id, run.current_phase.value)
        return asdict(success_response(run=run_view(run), request_id=_request_id()))

    def resume(self, run_id: str) -> dict:
        """Resume a paused run at its stored phase and dispatch a continuation."""
        run, err = self._resolve(run_id)
        if err:
            return err

        if run.status is not RunStatus.PAUSED:
            return _invalid_transition_response(
                "resume",
                run.status.value,
                RunStatus.RUNNING.value,
                reason="Only paused runs can be resumed",
            )

        expected_version = run.state_version
        run.status = RunStatus.RUNNING
        run.paused_at = None
        run.resume_count += 1
        err = self._save(run, expected_version, "resume")
        if err:
            return err

        self.dispatcher.dispatch(run.id)
        logger.info("Resumed run %s at %s (resume #%d)", run.id, run.current_phase.value, run.resume_count)
        return asdict(success_response(run=run_view(run), request_id=_request_id()))

    def stop(self, run_id: str) -> dict:
        run, err = self._resolve(run_id)
        if err:
            return err

        if run.status not in (RunStatus.RUNNING, RunStatus.PAUSED):
            return _invalid_transition_response(
                "stop",
                run.status.value,
                RunStatus.CANCELLED.value,
                reason="Only running or paused runs can be stopped",
            )

        expected_version = run.state_version
        run.status = RunStatus.CANCELLED
        run.completed_at = datetime.now(timezone.utc)
        run.error_message = STOPPED_BY_USER
        err = self._save(run, expected_version, "stop")
        if err:
            return err

        logger.info("Stopped run %s at %s", run.id, run.current_phase.value)
        return asdict(success_response(run=run_view(run), request_id=_request_id()))

    def nudge(self, run_id: str) -> dict:
        """Re-trigger processing of a running run; no-op for any other status."""
        run, err = self._resolve(run_id)
        if err:
            return err

        if run.status is not RunStatus.RUNNING:
            return asdict(
                success_response(
                    triggered=False,
                    run_id=run.id,
                    status=run.status.value,
                    request_id=_request_id(),
                )
            )

        self.dispatcher.dispatch(run.id)
        logger.info("Nudged run %s at %s", run.id, run.current_phase.value)
        return asdict(
            success_response(
                triggered=True,
                run_id=run.id,
                status=run.status.value,
                phase=run.current_phase.value,
                request_id=_request_id(),
            )
        )
