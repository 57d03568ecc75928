"""Unified error hierarchy for hypoforge.

All custom exception classes are defined in domain-specific modules within
this package. This __init__.py re-exports everything for convenient access.

Usage:
    # Import from domain modules for specificity
    from hypoforge.core.errors.pipeline import ExternalOperationError

    # Or import from the package; the pipeline TimeoutError is exported
    # under a qualified alias to avoid shadowing the builtin
    from hypoforge.core.errors import OperationTimeoutError

    # Registry helper
    from hypoforge.core.errors import error_to_response
"""

# --- Base / Registry ---
from hypoforge.core.errors.base import ERROR_MAPPINGS, error_to_response

# --- Pipeline errors ---
from hypoforge.core.errors.pipeline import (
    ContentGenerationError,
    ExternalOperationError,
    HypothesisNotFound,
    MissingInput,
    ParsingError,
    PipelineError,
    RateLimitError,
    RunNotFound,
    get_error_message,
    is_pipeline_error,
    wrap_error,
)
from hypoforge.core.errors.pipeline import (
    TimeoutError as OperationTimeoutError,
)

# --- Storage errors ---
from hypoforge.core.errors.storage import (
    LockAcquisitionError,
    RecordCorrupted,
    VersionConflictError,
)

__all__ = [
    # Registry
    "ERROR_MAPPINGS",
    "error_to_response",
    # Pipeline
    "PipelineError",
    "RunNotFound",
    "MissingInput",
    "HypothesisNotFound",
    "ExternalOperationError",
    "ContentGenerationError",
    "ParsingError",
    "RateLimitError",
    "OperationTimeoutError",
    "get_error_message",
    "is_pipeline_error",
    "wrap_error",
    # Storage
    "LockAcquisitionError",
    "RecordCorrupted",
    "VersionConflictError",
]
