"""Storage and concurrency error classes."""

from typing import Optional


class LockAcquisitionError(Exception):
    """Raised when a file lock cannot be acquired within timeout."""

    def __init__(self, resource: str, timeout: Optional[float] = None) -> None:
        self.resource = resource
        self.timeout = timeout
        suffix = f" within {timeout:g}s" if timeout is not None else ""
        super().__init__(f"Could not acquire lock for {resource}{suffix}")


class VersionConflictError(Exception):
    """Raised when optimistic version check fails during save."""

    def __init__(self, record_id: str, expected: int, actual: int) -> None:
        self.record_id = record_id
        self.expected_version = expected
        self.actual_version = actual
        super().__init__(
            f"Version conflict for {record_id}: expected {expected}, on-disk {actual}"
        )


class RecordCorrupted(Exception):
    """Raised when a record file exists but cannot be parsed or validated."""

    def __init__(self, record_id: str, reason: str) -> None:
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Record {record_id} is corrupted: {reason}")
