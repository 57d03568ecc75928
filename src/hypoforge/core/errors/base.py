"""Error-to-ErrorCode mapping registry.

Provides a centralized mapping from exception types to (ErrorCode, ErrorType)
tuples, enabling consistent error response generation across the HTTP and
CLI surfaces.

Usage:
    from hypoforge.core.errors.base import error_to_response

    try:
        do_something()
    except Exception as e:
        result = error_to_response(e)
        if result is not None:
            return result
        raise  # Unknown error, re-raise
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple, Type

from hypoforge.core.errors.pipeline import (
    ContentGenerationError,
    ExternalOperationError,
    HypothesisNotFound,
    MissingInput,
    ParsingError,
    PipelineError,
    RateLimitError,
    RunNotFound,
)
from hypoforge.core.errors.pipeline import (
    TimeoutError as OperationTimeoutError,
)
from hypoforge.core.errors.storage import (
    LockAcquisitionError,
    RecordCorrupted,
    VersionConflictError,
)
from hypoforge.core.responses.types import (
    ErrorCode,
    ErrorType,
)

ERROR_MAPPINGS: Dict[Type[Exception], Tuple[ErrorCode, ErrorType]] = {
    # --- Pipeline errors ---
    RunNotFound: (ErrorCode.RUN_NOT_FOUND, ErrorType.NOT_FOUND),
    HypothesisNotFound: (ErrorCode.HYPOTHESIS_NOT_FOUND, ErrorType.NOT_FOUND),
    MissingInput: (ErrorCode.MISSING_INPUT, ErrorType.VALIDATION),
    ExternalOperationError: (ErrorCode.EXTERNAL_OPERATION_ERROR, ErrorType.PIPELINE),
    ContentGenerationError: (ErrorCode.CONTENT_GENERATION_ERROR, ErrorType.PIPELINE),
    ParsingError: (ErrorCode.PARSING_ERROR, ErrorType.PIPELINE),
    RateLimitError: (ErrorCode.RATE_LIMIT_EXCEEDED, ErrorType.RATE_LIMIT),
    OperationTimeoutError: (ErrorCode.OPERATION_TIMEOUT, ErrorType.UNAVAILABLE),
    PipelineError: (ErrorCode.INTERNAL_ERROR, ErrorType.INTERNAL),
    # --- Storage / concurrency errors ---
    LockAcquisitionError: (ErrorCode.LOCK_TIMEOUT, ErrorType.UNAVAILABLE),
    VersionConflictError: (ErrorCode.VERSION_CONFLICT, ErrorType.CONFLICT),
    RecordCorrupted: (ErrorCode.INTERNAL_ERROR, ErrorType.INTERNAL),
}


def error_to_response(exc: Exception) -> Optional[dict]:
    """Convert a known exception to a standard error_response dict, or None if unknown.

    Looks up the exception's *exact* type in ERROR_MAPPINGS and, if found,
    generates a standardized error response using the mapped ErrorCode and
    ErrorType. Pipeline errors also carry their own code and details.

    Args:
        exc: The exception to convert.

    Returns:
        A response-v2 dict, or None if the exception type is not registered
        in ERROR_MAPPINGS.
    """
    mapping = ERROR_MAPPINGS.get(type(exc))
    if mapping is None:
        return None

    from dataclasses import asdict

    from hypoforge.core.responses.builders import error_response

    code, error_type = mapping
    details = None
    if isinstance(exc, PipelineError):
        details = {"pipeline_code": exc.code, **exc.details}
    return asdict(error_response(str(exc), error_code=code, error_type=error_type, details=details))
