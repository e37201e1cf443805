"""
Utility decorators for the Music Library service

Shared error handling, timing and retry behaviour for collaborator calls.
"""

import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar, cast

F = TypeVar('F', bound=Callable[..., Any])


def _logger_for(func: Callable, args: tuple) -> logging.Logger:
    """Prefer the instance logger, fall back to the function's module logger"""
    if args and isinstance(getattr(args[0], 'logger', None), logging.Logger):
        return args[0].logger
    return logging.getLogger(func.__module__)


def handle_errors(
    log_level: str = "error",
    return_on_error: Optional[Any] = None,
    reraise: bool = False,
    error_types: tuple = (Exception,)
) -> Callable[[F], F]:
    """
    Decorator for collaborator calls whose failure should degrade, not abort.

    Args:
        log_level: Logging level for errors (debug, info, warning, error, critical)
        return_on_error: Value to return when an error occurs
        reraise: Whether to re-raise the exception after logging
        error_types: Tuple of exception types to catch

    Returns:
        Decorated function with error handling

    Example:
        @handle_errors(log_level="warning", return_on_error=None)
        def lookup(self, title: str, artist: Optional[str] = None) -> Optional[TrackMetadata]:
            ...
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except error_types as e:
                logger = _logger_for(func, args)

                context = []
                if args and not isinstance(args[0], (str, bytes)):
                    context.append(f"Class: {args[0].__class__.__name__}")
                context.append(f"Function: {func.__name__}")

                getattr(logger, log_level)(
                    f"{' | '.join(context)} | Error: {e}",
                    exc_info=log_level in ("error", "critical")
                )

                if reraise:
                    raise

                return return_on_error

        return cast(F, wrapper)

    return decorator


def track_performance(
    threshold_ms: Optional[float] = None,
    log_slow: bool = True
) -> Callable[[F], F]:
    """
    Decorator to track function execution time.

    Args:
        threshold_ms: Log warning if execution time exceeds this threshold (milliseconds)
        log_slow: Whether to log slow executions

    Returns:
        Decorated function with performance tracking
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                execution_time = (time.perf_counter() - start_time) * 1000

                if threshold_ms and execution_time > threshold_ms and log_slow:
                    _logger_for(func, args).warning(
                        f"{func.__name__} took {execution_time:.2f}ms "
                        f"(threshold: {threshold_ms}ms)"
                    )

        return cast(F, wrapper)

    return decorator


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Callable[[F], F]:
    """
    Decorator to retry function execution with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries (seconds)
        backoff: Multiplier for delay after each retry
        exceptions: Tuple of exception types to retry on

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise

                    _logger_for(func, args).warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}), "
                        f"retrying in {current_delay:.1f}s: {e}"
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff

        return cast(F, wrapper)

    return decorator
