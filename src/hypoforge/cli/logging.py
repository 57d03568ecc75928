"""Structured logging hooks for CLI commands.

``cli_command`` runs each command inside a request context so log records
and output envelopes share one correlation ID.
"""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from hypoforge.core.context import sync_request_context

__all__ = [
    "cli_command",
    "get_cli_logger",
]

T = TypeVar("T")

_cli_logger = logging.getLogger("hypoforge.cli")


def get_cli_logger() -> logging.Logger:
    """Get the CLI logger."""
    return _cli_logger


def cli_command(command_name: Optional[str] = None) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for CLI commands with request correlation and timing.

    Example:
        >>> @cli_command("status")
        ... def status_cmd(ctx, run_id):
        ...     ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = command_name or func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with sync_request_context(client_id="cli", prefix="cli") as ctx:
                start = time.perf_counter()
                success = True
                _cli_logger.debug("CLI command started: %s", name, extra={"correlation_id": ctx.correlation_id})
                try:
                    return func(*args, **kwargs)
                except Exception:
                    success = False
                    raise
                finally:
                    _cli_logger.debug(
                        "CLI command completed: %s",
                        name,
                        extra={
                            "correlation_id": ctx.correlation_id,
                            "success": success,
                            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                        },
                    )

        return wrapper

    return decorator
