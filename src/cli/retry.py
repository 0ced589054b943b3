"""Retry utilities with exponential backoff for repository writes."""

import logging
import sqlite3

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.stdlib.get_logger(__name__)

# Transient storage failures: locked/busy database, full or unavailable disk
RETRYABLE_STORAGE_ERRORS: tuple[type[BaseException], ...] = (sqlite3.OperationalError, OSError)


def storage_retry(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    exceptions: tuple = RETRYABLE_STORAGE_ERRORS,
):
    """Retry decorator for repository writes.

    Anything outside `exceptions` (a serialization bug, say) fails on the
    first attempt. The last error is re-raised once attempts run out.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_from_config(retry_config=None):
    """Build storage_retry from a RetryConfig model; None means defaults."""
    if retry_config is None:
        return storage_retry()
    return storage_retry(
        max_attempts=retry_config.max_attempts,
        min_wait=retry_config.min_wait,
        max_wait=retry_config.max_wait,
    )
