"""Execution backends: how a created job actually gets run.

- DirectExecutionBackend: detached asyncio task in the serving process,
  single attempt, failure recorded immediately
- QueuedExecutionBackend: Celery message on the Redis broker; the worker
  retries with exponential backoff and records failure after the last attempt

Both take a job that already exists in the store and return immediately.
Services register one runner per job kind; a runner executes the job and
raises on failure, the backend owns turning that into job state.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import redis

from videoframer.exceptions import describe_error
from videoframer.models.job import Job, JobKind
from videoframer.services.job_store import JobStore

logger = logging.getLogger(__name__)

JobRunner = Callable[[str], Awaitable[None]]


def probe_broker(redis_url: str, timeout_s: float = 3.0) -> bool:
    """Best-effort PING of the queue broker, bounded by ``timeout_s``."""
    client = redis.Redis.from_url(
        redis_url,
        socket_connect_timeout=timeout_s,
        socket_timeout=timeout_s,
    )
    try:
        client.ping()
        logger.info(f"Queue broker reachable at {redis_url}")
        return True
    except (redis.RedisError, OSError) as e:
        logger.warning(f"Queue broker unreachable ({e}); falling back to direct mode")
        return False
    finally:
        client.close()


class ExecutionBackend(ABC):
    """Strategy for running jobs once they have been created."""

    mode: str = ""

    def __init__(self, store: JobStore):
        self.store = store
        self._runners: dict[JobKind, JobRunner] = {}

    def register(self, kind: JobKind, runner: JobRunner) -> None:
        self._runners[kind] = runner

    def runner_for(self, kind: JobKind) -> JobRunner:
        try:
            return self._runners[kind]
        except KeyError:
            raise LookupError(f"No runner registered for {kind.value} jobs") from None

    @abstractmethod
    def submit(self, job: Job) -> None:
        """Hand ``job`` off for execution without waiting for it."""


class DirectExecutionBackend(ExecutionBackend):
    """Runs jobs as asyncio tasks on the current event loop."""

    mode = "direct"

    def __init__(self, store: JobStore):
        super().__init__(store)
        # Strong references so pending tasks are not garbage collected.
        self._tasks: set[asyncio.Task] = set()

    def submit(self, job: Job) -> None:
        runner = self.runner_for(job.kind)
        task = asyncio.get_running_loop().create_task(self._execute(job.id, runner))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Dispatched {job.kind.value} job {job.id} (direct)")

    async def _execute(self, job_id: str, runner: JobRunner) -> None:
        try:
            await runner(job_id)
        except asyncio.CancelledError:
            self.store.fail_job(job_id, "Job was cancelled")
            raise
        except Exception as e:
            logger.exception(f"Job {job_id} raised during direct execution")
            self.store.fail_job(job_id, describe_error(e))

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight job task to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()


class QueuedExecutionBackend(ExecutionBackend):
    """Publishes jobs to the Celery queue; workers execute them."""

    mode = "queued"

    def __init__(self, store: JobStore, task: Any, queue: str | None = None):
        super().__init__(store)
        self.task = task
        self.queue = queue

    def submit(self, job: Job) -> None:
        try:
            self.task.apply_async(args=[job.kind.value, job.id], queue=self.queue)
        except Exception as e:
            logger.exception(f"Failed to enqueue job {job.id}")
            self.store.fail_job(job.id, f"Failed to enqueue job: {e}")
            return
        logger.info(f"Queued {job.kind.value} job {job.id}")
