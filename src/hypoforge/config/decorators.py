"""Logging and timing decorators.

``timed`` attaches the active correlation ID to every timing record
so entries from one invocation can be grouped.
"""

import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar

from hypoforge.core.context import get_correlation_id

T = TypeVar("T")


def timed(
    metric_name: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to measure and log function execution time.

    Args:
        metric_name: Optional metric name (defaults to function name)
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = metric_name or func.__name__
        log = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.perf_counter()
            success = False
            try:
                result = func(*args, **kwargs)
                success = True
                return result
            finally:
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                log.info(
                    f"Timer: {name} {elapsed_ms}ms",
                    extra={
                        "metric": name,
                        "duration_ms": elapsed_ms,
                        "success": success,
                        "correlation_id": get_correlation_id(),
                    },
                )

        return wrapper

    return decorator
