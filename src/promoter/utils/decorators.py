"""Decorator utilities for cross-cutting concerns."""
import time
import logging
import functools
from typing import Any, Callable, Optional, TypeVar, cast

# Setup logging
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])

def log_execution_time(func: F) -> F:
    """Decorator to log function execution time.

    Args:
        func: The function to decorate

    Returns:
        Decorated function that logs execution time
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            duration = time.time() - start_time
            logger.info(f"{func.__name__} completed in {duration:.2f}s")
            return result
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"{func.__name__} failed after {duration:.2f}s: {str(e)}")
            raise
    return cast(F, wrapper)

def log_operation(description: str):
    """Decorator for timing and logging a named deployment operation."""
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {description}")
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(f"Completed: {description} in {duration:.2f}s")
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(f"Failed: {description} after {duration:.2f}s - {str(e)}")
                raise
        return cast(F, wrapper)
    return decorator

def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: tuple = (Exception,), logger_name: Optional[str] = None,
          sleep: Callable[[float], None] = time.sleep):
    """Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff: Backoff multiplier (e.g., 2.0 means delay doubles each retry,
            1.0 keeps the spacing fixed)
        exceptions: Tuple of exceptions to catch for retry
        logger_name: Optional logger name (defaults to module logger)
        sleep: Function used to wait between attempts

    Returns:
        Decorator function
    """
    retry_logger = logging.getLogger(logger_name) if logger_name else logger

    def decorator(func: F) -> F:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay

            while attempt <= max_attempts:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        retry_logger.error(f"All {max_attempts} attempts failed for {name}: {str(e)}")
                        raise

                    retry_logger.warning(
                        f"Attempt {attempt}/{max_attempts} for {name} failed: {str(e)}. "
                        f"Retrying in {current_delay:.2f}s"
                    )

                    sleep(current_delay)
                    attempt += 1
                    current_delay *= backoff

        return cast(F, wrapper)

    return decorator
