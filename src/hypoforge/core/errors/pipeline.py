"""Pipeline error classes.

A single tagged family for everything that can go wrong while a run is
being advanced. Every error carries a stable ``code`` and structured
``details`` so it can be recorded on a Run or Hypothesis and surfaced
unchanged through the HTTP and CLI layers.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base exception for run pipeline operations.

    Attributes:
        message: Human-readable error description
        code: Stable machine-readable code (SCREAMING_SNAKE_CASE)
        details: Structured context for logs and responses
    """

    code: str = "PIPELINE_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class RunNotFound(PipelineError):
    """Raised when a run does not exist in the store."""

    code = "RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        super().__init__(f"Run {run_id} not found", details={"run_id": run_id})
        self.run_id = run_id


class MissingInput(PipelineError):
    """Raised when a required upstream resource is absent.

    Attributes:
        missing: Resource kinds that could not be found
    """

    code = "MISSING_INPUT"

    def __init__(self, project_id: str, missing: list):
        kinds = ", ".join(missing)
        super().__init__(
            f"Project {project_id} is missing required input: {kinds}",
            details={"project_id": project_id, "missing": list(missing)},
        )
        self.missing = list(missing)


class HypothesisNotFound(PipelineError):
    """Raised when a hypothesis does not exist in the store."""

    code = "HYPOTHESIS_NOT_FOUND"

    def __init__(self, hypothesis_id: str):
        super().__init__(
            f"Hypothesis {hypothesis_id} not found",
            details={"hypothesis_id": hypothesis_id},
        )
        self.hypothesis_id = hypothesis_id


class ExternalOperationError(PipelineError):
    """Raised when a long-running research interaction fails or is rejected."""

    code = "EXTERNAL_OPERATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        interaction_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        details: Dict[str, Any] = {"step": step}
        if interaction_id:
            details["interaction_id"] = interaction_id
        if status_code is not None:
            details["status_code"] = status_code
        label = f" ({step})" if step else ""
        super().__init__(f"External operation failed{label}: {message}", details=details)
        self.step = step
        self.interaction_id = interaction_id
        self.status_code = status_code


class ContentGenerationError(PipelineError):
    """Raised when a generation sub-call fails or returns nothing usable."""

    code = "CONTENT_GENERATION_ERROR"

    def __init__(self, message: str, *, step: Optional[str] = None, status_code: Optional[int] = None):
        details: Dict[str, Any] = {"step": step}
        if status_code is not None:
            details["status_code"] = status_code
        label = f" ({step})" if step else ""
        super().__init__(f"Content generation failed{label}: {message}", details=details)
        self.step = step
        self.status_code = status_code


class ParsingError(PipelineError):
    """Raised when structured extraction from model output fails."""

    code = "PARSING_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(f"Candidate parsing failed: {message}", details=details)


class RateLimitError(PipelineError):
    """Rate limit exceeded error.

    The only pipeline error retried automatically.

    Attributes:
        retry_after: Seconds to wait before retrying
    """

    code = "RATE_LIMIT_ERROR"

    def __init__(self, retry_after: Optional[float] = None, *, operation: Optional[str] = None):
        hint = f"; retry after {retry_after:g}s" if retry_after else ""
        super().__init__(
            f"Rate limit reached{hint}",
            details={"retry_after": retry_after, "operation": operation},
        )
        self.retry_after = retry_after
        self.operation = operation


class TimeoutError(PipelineError):
    """Raised when an operation or invocation exceeds its time ceiling."""

    code = "TIMEOUT_ERROR"

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Operation timed out: {operation} ({timeout_seconds:g}s)",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


def is_pipeline_error(exc: BaseException) -> bool:
    return isinstance(exc, PipelineError)


def get_error_message(exc: object) -> str:
    """Get a user-facing message from any error-like value."""
    if isinstance(exc, PipelineError):
        return exc.message
    if isinstance(exc, BaseException):
        return str(exc) or type(exc).__name__
    if isinstance(exc, str):
        return exc
    return "Unknown error"


def wrap_error(exc: BaseException, context: str) -> PipelineError:
    """Convert an unexpected exception into a PipelineError with context.

    Pipeline errors pass through unchanged so their code is preserved.

    Args:
        exc: The exception to wrap
        context: Short description of what was being attempted

    Returns:
        A PipelineError carrying code ``UNKNOWN_ERROR`` for foreign exceptions
    """
    if isinstance(exc, PipelineError):
        return exc
    message = get_error_message(exc)
    wrapped = PipelineError(
        f"{context}: {message}",
        "UNKNOWN_ERROR",
        {"original_error": message, "error_type": type(exc).__name__},
    )
    wrapped.__cause__ = exc
    return wrapped
