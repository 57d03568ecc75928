"""
Standard response contracts for run operations.

Re-exports all public symbols from sub-modules. Callers can use
``from hypoforge.core.responses import success_response`` or import from
canonical sub-module paths like ``responses.builders``.

Sub-modules:
    types           - ErrorCode, ErrorType, ToolResponse, _build_meta
    builders        - success_response, error_response
    errors_generic  - not_found_error, unauthorized_error, internal_error
"""

# --- Core types ---
from hypoforge.core.responses.types import (  # noqa: F401
    HTTP_STATUS_BY_ERROR_TYPE,
    ErrorCode,
    ErrorType,
    ToolResponse,
    _build_meta,
)

# --- Response builders ---
from hypoforge.core.responses.builders import (  # noqa: F401
    error_response,
    success_response,
)

# --- Generic error helpers ---
from hypoforge.core.responses.errors_generic import (  # noqa: F401
    internal_error,
    not_found_error,
    unauthorized_error,
)
