"""
Retry-on-conflict for catalog write transactions.

SQLite allows one writer at a time. Inside one process `CatalogDb` serializes
writers with an asyncio.Lock, but another process holding the file can still
make `BEGIN IMMEDIATE` (or a later statement) fail with "database is locked".
Those failures are transient: the transaction has already been rolled back,
so waiting and running the whole unit again is safe.

The backoff is exponential (initial_delay * backoff_factor**n, capped at
max_delay). Only `TransactionAborted(retryable=True)` is retried; every other
error propagates on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from cadence.config import RetrySettings
from cadence.core.db.errors import TransactionAborted

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    settings: RetrySettings,
    label: str,
) -> T:
    """
    Await `operation()` and retry it on retryable `TransactionAborted`.

    `operation` must be a factory: each attempt needs a fresh coroutine.

    Raises:
        TransactionAborted: retries exhausted, or a non-retryable abort
    """
    delay = settings.initial_delay
    start_time = time.monotonic()
    attempts = max(1, settings.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except TransactionAborted as e:
            if not e.retryable:
                raise
            if attempt == attempts:
                elapsed = (time.monotonic() - start_time) * 1000
                logger.error(
                    "Database locked after %d attempts (%.0fms total), giving up: %s",
                    attempts,
                    elapsed,
                    label,
                )
                raise
            logger.warning(
                "Database locked (attempt %d/%d), retrying in %.2fs: %s",
                attempt,
                attempts,
                delay,
                label,
            )
            await asyncio.sleep(delay)
            delay = min(delay * settings.backoff_factor, settings.max_delay)

    # Unreachable: the loop either returns or raises.
    raise RuntimeError("Unexpected state in retry loop")
