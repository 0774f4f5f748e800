"""Decorator utilities for cross-cutting concerns."""
import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar, cast

# Setup logging
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_operation(description: Optional[str] = None):
    """Time a deployment step and log its start, completion or failure.

    Args:
        description: Step name used in the log lines (defaults to the function name)

    Exceptions raised by the step are logged with the elapsed time and re-raised.
    """
    def decorator(func: F) -> F:
        step = description or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {step}")
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Failed: {step} after {time.monotonic() - started:.2f}s - {e}")
                raise
            logger.info(f"Completed: {step} in {time.monotonic() - started:.2f}s")
            return result
        return cast(F, wrapper)
    return decorator
