"""Bounded polling of job status endpoints."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from framer_client import config
from framer_client.errors import JobFailedError, PollTimeoutError

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[str], Awaitable[dict]]


@dataclass(frozen=True)
class RetryPolicy:
    """How often to poll and when to give up.

    The delay before poll ``n`` (0-based) is
    ``min(interval * multiplier**n, max_interval)``; polling stops after
    ``max_attempts`` polls or ``timeout`` seconds, whichever comes first.
    """

    interval: float = config.POLL_INTERVAL
    multiplier: float = config.POLL_MULTIPLIER
    max_interval: float = config.POLL_MAX_INTERVAL
    max_attempts: int = config.POLL_MAX_ATTEMPTS
    timeout: float = config.POLL_TIMEOUT

    def delay(self, attempt: int) -> float:
        return min(self.interval * self.multiplier**attempt, self.max_interval)


async def poll_until_terminal(
    fetch_status: StatusFetcher,
    job_id: str,
    policy: RetryPolicy | None = None,
    on_progress: Callable[[int], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict:
    """Poll ``fetch_status(job_id)`` until the job completes.

    Returns:
        The final status payload of the completed job

    Raises:
        JobFailedError: the job reached ``failed``
        PollTimeoutError: no terminal state within the policy's budget
        NotFoundError: the job is unknown or has expired
    """
    policy = policy or RetryPolicy()
    started = clock()
    attempts = 0

    while True:
        status = await fetch_status(job_id)
        attempts += 1

        if on_progress is not None and status.get("progress") is not None:
            on_progress(int(status["progress"]))

        state = status.get("status")
        if state == "completed":
            return status
        if state == "failed":
            raise JobFailedError(job_id, status.get("error"))

        if attempts >= policy.max_attempts or clock() - started >= policy.timeout:
            break
        await sleep(policy.delay(attempts - 1))

    elapsed = clock() - started
    logger.warning(f"Gave up on job {job_id} after {attempts} polls")
    raise PollTimeoutError(job_id, attempts, elapsed)
