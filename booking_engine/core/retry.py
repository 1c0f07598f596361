"""Retry strategies for transient failures."""

import logging as stdlib_logging
from typing import Tuple, Type, Union

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .exceptions import BranchDirectoryError, DatabasePoolTimeoutError, TransientStorageError

# Stdlib logger needed for tenacity's before_sleep_log
_stdlib_logger = stdlib_logging.getLogger(__name__)

TRANSIENT_STORAGE_ERRORS: Tuple[Type[Exception], ...] = (
    TransientStorageError,
    DatabasePoolTimeoutError,
)


def _make_retry(
    attempts: int,
    wait_strategy: object,
    exception_types: Union[Type[Exception], Tuple[Type[Exception], ...]],
) -> object:
    """
    Factory for creating retry decorators with consistent configuration.

    Args:
        attempts: Maximum number of attempts
        wait_strategy: Tenacity wait strategy
        exception_types: Exception type(s) to retry on

    Returns:
        Configured retry decorator
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_strategy,
        retry=retry_if_exception_type(exception_types),
        before_sleep=before_sleep_log(_stdlib_logger, stdlib_logging.WARNING),
        reraise=True,
    )


def get_storage_retry(attempts: int = 3):
    """
    Get retry strategy for storage operations.

    Only deadlocks, serialization failures, lock timeouts and pool exhaustion
    are retried. Booking rejections and sequence exhaustion surface immediately.

    Args:
        attempts: Maximum number of attempts

    Returns:
        Retry decorator configured for transient storage errors
    """
    return _make_retry(
        attempts=attempts,
        wait_strategy=wait_exponential(multiplier=0.05, min=0.05, max=1) + wait_random(0, 0.05),
        exception_types=TRANSIENT_STORAGE_ERRORS,
    )


def get_directory_retry(attempts: int = 2):
    """
    Get retry strategy for branch directory lookups.

    Args:
        attempts: Maximum number of attempts

    Returns:
        Retry decorator configured for recoverable directory errors
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception(
            lambda e: isinstance(e, BranchDirectoryError) and e.recoverable
        ),
        before_sleep=before_sleep_log(_stdlib_logger, stdlib_logging.WARNING),
        reraise=True,
    )
