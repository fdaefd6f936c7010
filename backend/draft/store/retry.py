"""Retry transient SQLite failures with exponential backoff.

Only sqlite3.OperationalError ("database is locked", disk I/O hiccups) is
considered transient. When retries run out the failure is surfaced to the
engine as StorageUnavailableError; callers write in single transactions, so
nothing has been partially applied at that point.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, TypeVar

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from draft.logic.exceptions import StorageUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tenacity import RetryCallState

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
_BACKOFF_MULTIPLIER = 0.05
_BACKOFF_MAX_SECONDS = 1.0


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome is not None else None
    logger.warning("storage call failed, retrying", attempt=state.attempt_number, error=str(error))


async def with_storage_retry(operation: Callable[[], T], *, what: str, attempts: int = DEFAULT_ATTEMPTS) -> T:
    """Run a synchronous storage operation, retrying transient errors."""
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=_BACKOFF_MULTIPLIER, max=_BACKOFF_MAX_SECONDS),
            retry=retry_if_exception_type(sqlite3.OperationalError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                result = operation()
    except sqlite3.OperationalError as e:
        logger.exception("storage unavailable", operation=what, attempts=attempts)
        raise StorageUnavailableError(f"storage unavailable during {what}") from e
    return result
