"""Tests for RunControl.

Covers:
- pause/resume/stop/nudge transition matrix
- Continuation dispatch on resume and nudge only
- Not-found and version-conflict envelopes
"""

from unittest.mock import MagicMock, patch

import pytest

from hypoforge.core.errors.storage import VersionConflictError
from hypoforge.core.runs.control import STOPPED_BY_USER, RunControl
from hypoforge.core.runs.models import RunPhase, RunStatus

from .conftest import make_run


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def control(storage, dispatcher):
    return RunControl(storage, dispatcher)


def _saved(storage, status: RunStatus, **kwargs):
    run = make_run(status=status, current_phase=kwargs.pop("current_phase", RunPhase.FANOUT_PARALLEL), **kwargs)
    storage.save_run(run)
    return run


def _assert_invalid_transition(response, current: str, target: str):
    assert response["success"] is False
    assert response["data"]["error_code"] == "INVALID_STATE_TRANSITION"
    assert response["data"]["error_type"] == "validation"
    details = response["data"]["details"]
    assert details["current_status"] == current
    assert details["target_status"] == target


# =============================================================================
# Pause
# =============================================================================


class TestPause:
    def test_pause_running(self, control, storage, dispatcher):
        run = _saved(storage, RunStatus.RUNNING)

        response = control.pause(run.id)

        assert response["success"] is True
        assert response["data"]["run"]["status"] == "paused"
        stored = storage.load_run(run.id)
        assert stored.status is RunStatus.PAUSED
        assert stored.paused_at is not None
        assert stored.current_phase is RunPhase.FANOUT_PARALLEL
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.parametrize(
        "status",
        [RunStatus.PENDING, RunStatus.PAUSED, RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.CANCELLED],
    )
    def test_pause_rejected(self, control, storage, status):
        run = _saved(storage, status)

        response = control.pause(run.id)

        _assert_invalid_transition(response, status.value, "paused")
        assert storage.load_run(run.id).status is status


# =============================================================================
# Resume
# =============================================================================


class TestResume:
    def test_resume_paused(self, control, storage, dispatcher):
        run = _saved(storage, RunStatus.RUNNING)
        control.pause(run.id)

        response = control.resume(run.id)

        assert response["success"] is True
        stored = storage.load_run(run.id)
        assert stored.status is RunStatus.RUNNING
        assert stored.paused_at is None
        assert stored.resume_count == 1
        assert stored.current_phase is RunPhase.FANOUT_PARALLEL
        dispatcher.dispatch.assert_called_once_with(run.id)

    @pytest.mark.parametrize(
        "status",
        [RunStatus.PENDING, RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.CANCELLED],
    )
    def test_resume_rejected(self, control, storage, dispatcher, status):
        run = _saved(storage, status)

        response = control.resume(run.id)

        _assert_invalid_transition(response, status.value, "running")
        dispatcher.dispatch.assert_not_called()


# =============================================================================
# Stop
# =============================================================================


class TestStop:
    @pytest.mark.parametrize("status", [RunStatus.RUNNING, RunStatus.PAUSED])
    def test_stop_active(self, control, storage, dispatcher, status):
        run = _saved(storage, status)

        response = control.stop(run.id)

        assert response["success"] is True
        stored = storage.load_run(run.id)
        assert stored.status is RunStatus.CANCELLED
        assert stored.error_message == STOPPED_BY_USER
        assert stored.completed_at is not None
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.parametrize(
        "status",
        [RunStatus.PENDING, RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.CANCELLED],
    )
    def test_stop_rejected(self, control, storage, status):
        run = _saved(storage, status)

        response = control.stop(run.id)

        _assert_invalid_transition(response, status.value, "cancelled")

    def test_stopped_run_cannot_resume(self, control, storage):
        run = _saved(storage, RunStatus.PAUSED)
        control.stop(run.id)

        response = control.resume(run.id)

        _assert_invalid_transition(response, "cancelled", "running")


# =============================================================================
# Nudge
# =============================================================================


class TestNudge:
    def test_nudge_running(self, control, storage, dispatcher):
        run = _saved(storage, RunStatus.RUNNING)
        version = storage.load_run(run.id).state_version

        response = control.nudge(run.id)

        assert response["success"] is True
        assert response["data"]["triggered"] is True
        assert response["data"]["phase"] == "fanout_parallel"
        dispatcher.dispatch.assert_called_once_with(run.id)
        assert storage.load_run(run.id).state_version == version

    @pytest.mark.parametrize(
        "status",
        [RunStatus.PENDING, RunStatus.PAUSED, RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.CANCELLED],
    )
    def test_nudge_is_noop_otherwise(self, control, storage, dispatcher, status):
        run = _saved(storage, status)

        response = control.nudge(run.id)

        assert response["success"] is True
        assert response["data"]["triggered"] is False
        assert response["data"]["status"] == status.value
        dispatcher.dispatch.assert_not_called()


# =============================================================================
# Errors
# =============================================================================


class TestErrors:
    @pytest.mark.parametrize("action", ["pause", "resume", "stop", "nudge"])
    def test_unknown_run(self, control, action):
        response = getattr(control, action)("missing-run")

        assert response["success"] is False
        assert response["data"]["error_code"] == "RUN_NOT_FOUND"
        assert response["data"]["error_type"] == "not_found"

    def test_version_conflict(self, control, storage, dispatcher):
        run = _saved(storage, RunStatus.PAUSED)

        with patch.object(storage, "save_run", side_effect=VersionConflictError(run.id, 1, 2)):
            response = control.resume(run.id)

        assert response["success"] is False
        assert response["data"]["error_code"] == "VERSION_CONFLICT"
        assert response["data"]["error_type"] == "conflict"
        assert response["data"]["details"]["expected_version"] == 1
        assert response["data"]["details"]["actual_version"] == 2
        dispatcher.dispatch.assert_not_called()

    def test_racing_writer_detected(self, control, storage):
        run = _saved(storage, RunStatus.RUNNING)
        original_load = storage.load_run

        def load_then_race(run_id):
            loaded = original_load(run_id)
            racer = original_load(run_id)
            racer.progress.message = "executor wrote"
            storage.save_run(racer)
            return loaded

        with patch.object(storage, "load_run", side_effect=load_then_race):
            response = control.pause(run.id)

        assert response["data"]["error_code"] == "VERSION_CONFLICT"
        assert storage.load_run(run.id).status is RunStatus.RUNNING
