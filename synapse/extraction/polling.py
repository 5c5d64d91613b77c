"""Bounded fixed-interval polling for asynchronous remote operations.

Retry model:
    - Sleep `interval` seconds, then check status; repeat.
    - At most `max_attempts` status checks.
    - Each status is classified as pending (retry), succeeded, or failed.
    - Only pending statuses are retried; a failed status ends polling at once.
    - Exhausting the bound raises `OpticalTimeoutError`; no further checks follow.

Determinism:
    Deterministic for a fixed sequence of fetched statuses. `sleep` is injectable
    so tests can run without real delays.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from synapse.core.ports import PollStatus
from synapse.exceptions import OpticalServiceError, OpticalTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until_complete(
    fetch: Callable[[], Awaitable[T]],
    classify: Callable[[T], PollStatus],
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    describe_failure: Callable[[T], str] | None = None,
) -> T:
    """Poll `fetch` until `classify` reports a terminal status.

    Args:
        fetch: Coroutine factory returning the current operation status.
        classify: Maps a fetched status to `PollStatus`.
        interval: Delay before every status check, in seconds.
        max_attempts: Upper bound on status checks.
        sleep: Awaitable sleep function.
        describe_failure: Optional formatter for failed-status error messages.

    Returns:
        The first status classified as `SUCCEEDED`.

    Raises:
        OpticalServiceError: A status classified as `FAILED`.
        OpticalTimeoutError: `max_attempts` checks were all pending.
    """
    for attempt in range(1, max_attempts + 1):
        await sleep(interval)
        status = await fetch()
        outcome = classify(status)

        if outcome is PollStatus.PENDING:
            logger.debug("Operation still pending after check %d/%d", attempt, max_attempts)
            continue

        if outcome is PollStatus.FAILED:
            detail = describe_failure(status) if describe_failure else "operation failed"
            raise OpticalServiceError(detail)

        logger.info("Operation completed after %d status checks", attempt)
        return status

    raise OpticalTimeoutError(max_attempts)
