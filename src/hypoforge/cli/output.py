"""JSON output helpers for the hypoforge CLI.

The CLI is JSON-first: every command writes one response-v2 envelope.
Successes go to stdout; errors go to stderr with exit code 1.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Optional, Sequence

from hypoforge.core.context import generate_correlation_id, get_correlation_id
from hypoforge.core.responses import error_response, success_response


def _ensure_request_id() -> str:
    return get_correlation_id() or generate_correlation_id("cli")


def emit(data: Any) -> None:
    """Emit JSON to stdout in minified form."""
    print(json.dumps(data, separators=(",", ":"), default=str))


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Emit an error envelope to stderr and exit with code 1.

    Args:
        message: Human-readable error description.
        code: Error code in SCREAMING_SNAKE_CASE (e.g., VALIDATION_ERROR, NOT_FOUND).
        error_type: Error category (validation, not_found, internal, etc.).
        remediation: Actionable guidance for resolving the error.
        details: Optional additional error context.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        request_id=_ensure_request_id(),
    )
    print(json.dumps(asdict(response), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)


def emit_success(
    data: Any,
    *,
    warnings: Optional[Sequence[str]] = None,
    telemetry: Optional[Mapping[str, Any]] = None,
) -> None:
    """Emit a success envelope to stdout.

    Non-dict data is wrapped under a ``result`` key.
    """
    payload = data if isinstance(data, dict) else {"result": data}
    response = success_response(
        data=payload,
        warnings=warnings,
        telemetry=telemetry,
        request_id=_ensure_request_id(),
    )
    emit(asdict(response))


def emit_envelope(envelope: Mapping[str, Any]) -> None:
    """Emit an envelope produced elsewhere (e.g. run control).

    Failed envelopes go to stderr and exit with code 1.
    """
    if envelope.get("success"):
        emit(dict(envelope))
        return
    print(json.dumps(dict(envelope), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)
