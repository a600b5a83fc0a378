"""Retry strategies for different exception types."""

import logging as stdlib_logging
from typing import Tuple, Type, Union

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from notebook_relay.constants import Retries
from notebook_relay.core.exceptions import DriverError

# Stdlib logger needed for tenacity's before_sleep_log (intercepted into loguru)
_stdlib_logger = stdlib_logging.getLogger(__name__)


def _make_retry(
    attempts: int,
    wait_strategy: object,
    exception_types: Union[Type[BaseException], Tuple[Type[BaseException], ...]],
) -> object:
    """
    Factory for creating retry decorators with consistent configuration.

    Args:
        attempts: Maximum number of retry attempts
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


def get_profile_copy_retry():
    """
    Get retry strategy for copying browser profiles.

    The browser may hold file handles for a moment after it exits, so copy
    failures are retried with a short backoff.

    Returns:
        Retry decorator configured for OSError
    """
    return _make_retry(
        attempts=Retries.MAX_PROFILE_COPY,
        wait_strategy=wait_exponential(
            multiplier=Retries.BACKOFF_MULTIPLIER,
            min=Retries.BACKOFF_MIN_SECONDS,
            max=Retries.BACKOFF_MAX_SECONDS,
        ),
        exception_types=OSError,
    )


def get_navigation_retry():
    """
    Get retry strategy for opening the chat page.

    Returns:
        Retry decorator configured for driver errors
    """
    return _make_retry(
        attempts=Retries.MAX_NAVIGATION,
        wait_strategy=wait_exponential(multiplier=1, min=2, max=10) + wait_random(0, 1),
        exception_types=DriverError,
    )
