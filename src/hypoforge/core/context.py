"""Request context management for correlation across runs and invocations.

A single place for request-scoped values that need to follow a request
through the scheduler, executor and response builders:

- Correlation ID generation and propagation
- Caller identification (process endpoint, CLI, watchdog)
- Thread-safe context variables via contextvars

Usage:
    from hypoforge.core.context import sync_request_context, get_correlation_id

    with sync_request_context(client_id="cron") as ctx:
        logger.info("Processing %s", ctx.correlation_id)
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

__all__ = [
    "correlation_id_var",
    "client_id_var",
    "start_time_var",
    "RequestContext",
    "generate_correlation_id",
    "sync_request_context",
    "get_correlation_id",
    "get_client_id",
    "get_current_context",
]

# -----------------------------------------------------------------------------
# Context Variables
# -----------------------------------------------------------------------------

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
"""Request correlation ID for tracing a request across components."""

client_id_var: ContextVar[str] = ContextVar("client_id", default="anonymous")
"""Identifier for the caller that triggered the request."""

start_time_var: ContextVar[float] = ContextVar("start_time", default=0.0)
"""Request start time as Unix timestamp."""


def generate_correlation_id(prefix: str = "req") -> str:
    """Generate a unique correlation ID with optional prefix.

    Format: {prefix}_{12_hex_chars}
    Example: "req_a1b2c3d4e5f6"

    Args:
        prefix: ID prefix (default: "req")

    Returns:
        Unique correlation ID string
    """
    return f"{prefix}_{secrets.token_hex(6)}"


# -----------------------------------------------------------------------------
# Request Context
# -----------------------------------------------------------------------------


@dataclass
class RequestContext:
    """Snapshot of the current request context.

    Attributes:
        correlation_id: Unique request identifier
        client_id: Caller identifier
        start_time: Request start timestamp
    """

    correlation_id: str = ""
    client_id: str = "anonymous"
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time since request start in milliseconds."""
        if self.start_time <= 0:
            return 0.0
        return (time.time() - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "client_id": self.client_id,
            "start_time": self.start_time,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@contextmanager
def sync_request_context(
    *,
    correlation_id: Optional[str] = None,
    client_id: Optional[str] = None,
    prefix: str = "req",
) -> Generator[RequestContext, None, None]:
    """Synchronous context manager for request context.

    Sets up context variables for the duration of the with block and
    resets them on exit.

    Args:
        correlation_id: Request ID (auto-generated if None)
        client_id: Caller identifier (default: "anonymous")
        prefix: Prefix used when generating a correlation ID

    Yields:
        RequestContext snapshot
    """
    corr_id = correlation_id or generate_correlation_id(prefix)
    client = client_id or "anonymous"
    start = time.time()

    token_corr = correlation_id_var.set(corr_id)
    token_client = client_id_var.set(client)
    token_start = start_time_var.set(start)

    try:
        yield RequestContext(correlation_id=corr_id, client_id=client, start_time=start)
    finally:
        correlation_id_var.reset(token_corr)
        client_id_var.reset(token_client)
        start_time_var.reset(token_start)


# -----------------------------------------------------------------------------
# Accessors
# -----------------------------------------------------------------------------


def get_correlation_id() -> str:
    """Get the current correlation ID from context.

    Returns:
        Current correlation ID or empty string if not set
    """
    return correlation_id_var.get()


def get_client_id() -> str:
    """Get the current client ID from context."""
    return client_id_var.get()


def get_current_context() -> RequestContext:
    return RequestContext(
        correlation_id=correlation_id_var.get(),
        client_id=client_id_var.get(),
        start_time=start_time_var.get(),
    )
