"""File-based storage backend for runs, hypotheses and projects.

Provides thread- and process-safe persistence with:
- Atomic writes (temp+fsync+rename)
- File locking with timeout
- Optimistic concurrency via ``state_version``
- A per-run advisory step lock held by the executor
"""

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Type, TypeVar

from filelock import FileLock, Timeout
from pydantic import BaseModel, ValidationError

from hypoforge.core.errors.storage import LockAcquisitionError, RecordCorrupted, VersionConflictError

from .models import Hypothesis, Project, Run, RunStatus

logger = logging.getLogger(__name__)

# Lock acquisition timeout (seconds)
LOCK_ACQUISITION_TIMEOUT = 5

ModelT = TypeVar("ModelT", bound=BaseModel)


def sanitize_id(item_id: str) -> str:
    """Sanitize ID to prevent path traversal attacks.

    Args:
        item_id: Raw identifier

    Returns:
        Sanitized identifier safe for filesystem use
    """
    # Only allow alphanumeric, hyphens, underscores
    return "".join(c for c in item_id if c.isalnum() or c in "-_")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RunStorage:
    """File-based storage for pipeline records.

    Layout under ``storage_path``::

        runs/{id}.json
        hypotheses/{id}.json
        projects/{id}.json
        locks/
    """

    def __init__(self, storage_path: Path) -> None:
        """Initialize storage backend.

        Args:
            storage_path: Root directory for all records
        """
        self.storage_path = Path(storage_path)
        self.runs_path = self.storage_path / "runs"
        self.hypotheses_path = self.storage_path / "hypotheses"
        self.projects_path = self.storage_path / "projects"
        self.locks_path = self.storage_path / "locks"

        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create storage directories if they don't exist."""
        for path in (self.runs_path, self.hypotheses_path, self.projects_path, self.locks_path):
            path.mkdir(parents=True, exist_ok=True)

    def _record_path(self, directory: Path, record_id: str) -> Path:
        return directory / f"{sanitize_id(record_id)}.json"

    def _lock_path(self, kind: str, record_id: str) -> Path:
        return self.locks_path / f"{kind}_{sanitize_id(record_id)}.lock"

    @contextmanager
    def _record_lock(self, kind: str, record_id: str) -> Iterator[None]:
        """Hold the per-record lock for one read or write."""
        lock = FileLock(self._lock_path(kind, record_id), timeout=LOCK_ACQUISITION_TIMEOUT)
        try:
            lock.acquire()
        except Timeout as exc:
            raise LockAcquisitionError(f"{kind} {record_id}", LOCK_ACQUISITION_TIMEOUT) from exc
        try:
            yield
        finally:
            lock.release()

    # =========================================================================
    # Low-level read/write
    # =========================================================================

    def _write_atomic(self, path: Path, record_id: str, data: dict) -> None:
        """Write JSON via temp file + fsync + rename. Caller holds the lock."""
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{sanitize_id(record_id)}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, default=str)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, path)

        except Exception:
            # Clean up temp file on error
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def _read(self, path: Path, model: Type[ModelT], record_id: str) -> Optional[ModelT]:
        """Parse a record file. Caller holds the lock.

        Raises:
            RecordCorrupted: If the file exists but is not a valid record
        """
        if not path.exists():
            return None
        try:
            return model.model_validate(json.loads(path.read_text()))
        except (json.JSONDecodeError, ValidationError, ValueError) as exc:
            raise RecordCorrupted(record_id, str(exc)) from exc

    def _on_disk_version(self, path: Path) -> int:
        """Return the persisted ``state_version`` or 0 when absent/unreadable."""
        if not path.exists():
            return 0
        try:
            return int(json.loads(path.read_text()).get("state_version", 0))
        except (json.JSONDecodeError, TypeError, ValueError):
            return 0

    def _save_versioned(
        self,
        record: BaseModel,
        *,
        kind: str,
        directory: Path,
        expected_version: Optional[int],
        touch: bool,
    ) -> None:
        record_id = record.id  # type: ignore[attr-defined]
        path = self._record_path(directory, record_id)

        with self._record_lock(kind, record_id):
            on_disk = self._on_disk_version(path)
            if expected_version is not None and on_disk != expected_version:
                raise VersionConflictError(record_id, expected_version, on_disk)

            record.state_version = on_disk + 1 if on_disk else max(record.state_version, 1)  # type: ignore[attr-defined]
            if touch:
                record.updated_at = _utc_now()  # type: ignore[attr-defined]

            self._write_atomic(path, record_id, record.model_dump(mode="json", by_alias=True))
            logger.debug("Saved %s %s (v%s)", kind, record_id, record.state_version)  # type: ignore[attr-defined]

    def _load(self, record_id: str, *, kind: str, directory: Path, model: Type[ModelT]) -> Optional[ModelT]:
        path = self._record_path(directory, record_id)

        # Quick existence check (non-atomic, but avoids lock contention)
        if not path.exists():
            return None

        with self._record_lock(kind, record_id):
            try:
                return self._read(path, model, record_id)
            except RecordCorrupted as exc:
                logger.warning("Failed to load %s %s: %s", kind, record_id, exc.reason)
                return None

    def _iter_records(self, directory: Path, model: Type[ModelT]) -> Iterable[ModelT]:
        """Yield every readable record in ``directory`` without locking."""
        for path in sorted(directory.glob("*.json")):
            try:
                yield model.model_validate(json.loads(path.read_text()))
            except (OSError, json.JSONDecodeError, ValidationError, ValueError) as exc:
                logger.warning("Skipping unreadable record %s: %s", path.name, exc)

    # =========================================================================
    # Runs
    # =========================================================================

    def save_run(self, run: Run, expected_version: Optional[int] = None, *, touch: bool = True) -> None:
        """Save a run with atomic write and locking.

        Args:
            run: Run to save. ``state_version`` and ``updated_at`` are
                updated in place.
            expected_version: When given, the save only succeeds if the
                persisted ``state_version`` still equals this value.
            touch: Refresh ``updated_at`` (the watchdog's liveness signal)

        Raises:
            VersionConflictError: If ``expected_version`` does not match
            LockAcquisitionError: If the record lock times out
        """
        self._save_versioned(
            run, kind="run", directory=self.runs_path, expected_version=expected_version, touch=touch
        )

    def load_run(self, run_id: str) -> Optional[Run]:
        """Load a run, or None if missing or corrupt."""
        return self._load(run_id, kind="run", directory=self.runs_path, model=Run)

    def list_runs(self, statuses: Optional[Iterable[RunStatus]] = None) -> List[Run]:
        """List runs, optionally filtered by status, oldest first."""
        wanted = {RunStatus(s) for s in statuses} if statuses is not None else None
        runs = [run for run in self._iter_records(self.runs_path, Run) if wanted is None or run.status in wanted]
        runs.sort(key=lambda r: (r.created_at, r.id))
        return runs

    def delete_run(self, run_id: str) -> bool:
        """Delete a run; its hypotheses are kept with ``run_id`` cleared.

        Returns:
            True if deleted, False if not found
        """
        path = self._record_path(self.runs_path, run_id)
        if not path.exists():
            return False

        for hypothesis in self.list_hypotheses(run_id=run_id, include_deleted=True):
            hypothesis.run_id = None
            self.save_hypothesis(hypothesis)

        with self._record_lock("run", run_id):
            try:
                path.unlink()
            except FileNotFoundError:
                return False

        logger.info("Deleted run %s", run_id)
        return True

    def acquire_run_lock(self, run_id: str, timeout: float = LOCK_ACQUISITION_TIMEOUT) -> FileLock:
        """Acquire the per-run step lock.

        Distinct from the record lock: it is held for a whole executor step,
        while record locks only cover individual reads and writes.

        Args:
            run_id: Run identifier
            timeout: Lock acquisition timeout

        Returns:
            FileLock instance (caller must use as context manager)

        Raises:
            Timeout: If lock cannot be acquired
        """
        return FileLock(self._lock_path("step", run_id), timeout=timeout)

    # =========================================================================
    # Hypotheses
    # =========================================================================

    def save_hypothesis(
        self,
        hypothesis: Hypothesis,
        expected_version: Optional[int] = None,
        *,
        touch: bool = True,
    ) -> None:
        """Save a hypothesis. See ``save_run`` for version semantics."""
        self._save_versioned(
            hypothesis,
            kind="hypothesis",
            directory=self.hypotheses_path,
            expected_version=expected_version,
            touch=touch,
        )

    def load_hypothesis(self, hypothesis_id: str) -> Optional[Hypothesis]:
        return self._load(hypothesis_id, kind="hypothesis", directory=self.hypotheses_path, model=Hypothesis)

    def list_hypotheses(
        self,
        run_id: Optional[str] = None,
        project_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Hypothesis]:
        """List hypotheses by run and/or project.

        Results are ordered by ``index_in_run`` within a run, then creation.
        """
        results = []
        for hypothesis in self._iter_records(self.hypotheses_path, Hypothesis):
            if run_id is not None and hypothesis.run_id != run_id:
                continue
            if project_id is not None and hypothesis.project_id != project_id:
                continue
            if hypothesis.is_deleted and not include_deleted:
                continue
            results.append(hypothesis)
        results.sort(key=lambda h: (h.run_id or "", h.index_in_run, h.created_at))
        return results

    def soft_delete_hypothesis(self, hypothesis_id: str) -> Optional[Hypothesis]:
        """Mark a hypothesis deleted. Idempotent; returns None if missing."""
        hypothesis = self.load_hypothesis(hypothesis_id)
        if hypothesis is None:
            return None
        if hypothesis.deleted_at is None:
            hypothesis.deleted_at = _utc_now()
            self.save_hypothesis(hypothesis, expected_version=hypothesis.state_version)
            logger.info("Soft-deleted hypothesis %s", hypothesis_id)
        return hypothesis

    # =========================================================================
    # Projects
    # =========================================================================

    def save_project(self, project: Project) -> None:
        path = self._record_path(self.projects_path, project.id)
        with self._record_lock("project", project.id):
            project.updated_at = _utc_now()
            self._write_atomic(path, project.id, project.model_dump(mode="json", by_alias=True))

    def load_project(self, project_id: str) -> Optional[Project]:
        return self._load(project_id, kind="project", directory=self.projects_path, model=Project)
