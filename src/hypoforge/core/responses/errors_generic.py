"""
Generic HTTP-analog error helpers.

Provides helpers mapping to standard HTTP status codes:
unauthorized (401), not_found (404), internal (500).
"""

from typing import Any, Mapping, Optional

from hypoforge.core.responses.builders import error_response
from hypoforge.core.responses.types import ErrorCode, ErrorType, ToolResponse


def not_found_error(
    resource_type: str,
    resource_id: str,
    *,
    error_code: ErrorCode = ErrorCode.NOT_FOUND,
    remediation: Optional[str] = None,
    request_id: Optional[str] = None,
) -> ToolResponse:
    """Create a not found error response (HTTP 404 analog).

    Args:
        resource_type: Type of resource (e.g., "Run", "Hypothesis").
        resource_id: Identifier of the missing resource.
        error_code: Specific not-found code (defaults to NOT_FOUND).
        remediation: Guidance on how to resolve (defaults to verification hint).
        request_id: Correlation identifier.

    Example:
        >>> not_found_error("Run", "01J0000000000000000000000")
    """
    return error_response(
        f"{resource_type} '{resource_id}' not found",
        error_code=error_code,
        error_type=ErrorType.NOT_FOUND,
        data={"resource_type": resource_type, "resource_id": resource_id},
        remediation=remediation or f"Verify the {resource_type.lower()} ID exists.",
        request_id=request_id,
    )


def unauthorized_error(
    message: str = "Authentication required",
    *,
    remediation: Optional[str] = None,
    request_id: Optional[str] = None,
) -> ToolResponse:
    """Create an unauthorized error response (HTTP 401 analog)."""
    return error_response(
        message,
        error_code=ErrorCode.UNAUTHORIZED,
        error_type=ErrorType.AUTHENTICATION,
        remediation=remediation or "Provide valid authentication credentials.",
        request_id=request_id,
    )


def internal_error(
    message: str = "An internal error occurred",
    *,
    details: Optional[Mapping[str, Any]] = None,
    request_id: Optional[str] = None,
) -> ToolResponse:
    """Create an internal error response (HTTP 500 analog)."""
    return error_response(
        message,
        error_code=ErrorCode.INTERNAL_ERROR,
        error_type=ErrorType.INTERNAL,
        details=details,
        remediation="Retry the request. If the problem persists, check server logs.",
        request_id=request_id,
    )
