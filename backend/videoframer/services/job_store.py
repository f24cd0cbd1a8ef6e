"""Job store: registry of job id -> mutable job state.

Two implementations share one contract:

- InMemoryJobStore: process-local dict, used in direct mode
- RedisJobStore: JSON records in Redis, used in queued mode so that Celery
  workers and the API process see the same jobs

Transition rules live in the base class and are applied through a single
atomic ``_mutate`` primitive, so both stores enforce the same lifecycle:

    pending -> running -> completed | failed
    pending -> completed            (uploads never enter running)

Mutations on a terminal job are no-ops and return False.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone

import redis

from videoframer.exceptions import JobNotFoundError
from videoframer.models.job import Job, JobKind, JobStatus

logger = logging.getLogger(__name__)

# Progress is capped below 100 until the job actually completes.
MAX_RUNNING_PROGRESS = 99


class JobStore(ABC):
    """Contract shared by every job store."""

    @abstractmethod
    def _insert(self, job: Job) -> None: ...

    @abstractmethod
    def get_job(self, job_id: str) -> Job | None:
        """Return a snapshot of the job, or None if unknown/expired."""

    @abstractmethod
    def _mutate(self, job_id: str, apply: Callable[[Job], bool]) -> bool:
        """Atomically load, apply and persist. ``apply`` returns False to abort."""

    @abstractmethod
    def list_jobs(self) -> list[Job]: ...

    @abstractmethod
    def delete_job(self, job_id: str) -> bool: ...

    def create_job(self, kind: JobKind, source_ref: str, overlay_id: str | None = None) -> Job:
        job = Job(kind=kind, source_ref=source_ref, overlay_id=overlay_id)
        self._insert(job)
        logger.info(f"Created {kind.value} job {job.id}")
        return job

    def require_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def mark_running(self, job_id: str) -> bool:
        def apply(job: Job) -> bool:
            if job.status is not JobStatus.PENDING:
                return False
            job.status = JobStatus.RUNNING
            return True

        return self._mutate(job_id, apply)

    def update_progress(self, job_id: str, value: float) -> bool:
        """Raise progress of a running job; lower or equal values are ignored."""
        clamped = max(0, min(MAX_RUNNING_PROGRESS, int(value)))

        def apply(job: Job) -> bool:
            if job.status is not JobStatus.RUNNING or clamped <= job.progress:
                return False
            job.progress = clamped
            return True

        return self._mutate(job_id, apply)

    def complete_job(self, job_id: str, result_location: str) -> bool:
        def apply(job: Job) -> bool:
            if job.is_terminal:
                return False
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.result_location = result_location
            job.error = None
            return True

        applied = self._mutate(job_id, apply)
        if applied:
            logger.info(f"Job {job_id} completed: {result_location}")
        return applied

    def fail_job(self, job_id: str, error: str) -> bool:
        def apply(job: Job) -> bool:
            if job.is_terminal:
                return False
            job.status = JobStatus.FAILED
            job.error = error or "Unknown error"
            return True

        applied = self._mutate(job_id, apply)
        if applied:
            logger.error(f"Job {job_id} failed: {error}")
        return applied

    def purge_older_than(self, max_age_s: float, now: datetime | None = None) -> list[Job]:
        """Delete finished job records older than ``max_age_s`` and return them.

        Pending and running jobs are kept regardless of age; their runner
        still has to record the outcome.
        """
        now = now or datetime.now(timezone.utc)
        removed = []
        for job in self.list_jobs():
            if not job.is_terminal or job.age_seconds(now) <= max_age_s:
                continue
            if self.delete_job(job.id):
                removed.append(job)
        return removed


class InMemoryJobStore(JobStore):
    """Process-local job store (direct mode, tests)."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def _insert(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return Job.from_dict(job.to_dict()) if job else None

    def _mutate(self, job_id: str, apply: Callable[[Job], bool]) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.debug(f"Ignoring update for unknown job {job_id}")
                return False
            if not apply(job):
                return False
            job.updated_at = datetime.now(timezone.utc)
            return True

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return [Job.from_dict(job.to_dict()) for job in self._jobs.values()]

    def delete_job(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None


class RedisJobStore(JobStore):
    """Job records stored as JSON strings under ``<prefix>:job:<id>``."""

    def __init__(self, client: redis.Redis, prefix: str = "videoframer") -> None:
        self._redis = client
        self._prefix = prefix

    def _key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    @staticmethod
    def _decode(raw: bytes | str) -> Job:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return Job.from_dict(json.loads(raw))

    def _insert(self, job: Job) -> None:
        self._redis.set(self._key(job.id), json.dumps(job.to_dict()))

    def get_job(self, job_id: str) -> Job | None:
        raw = self._redis.get(self._key(job_id))
        return self._decode(raw) if raw is not None else None

    def _mutate(self, job_id: str, apply: Callable[[Job], bool]) -> bool:
        key = self._key(job_id)
        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    raw = pipe.get(key)
                    if raw is None:
                        pipe.unwatch()
                        logger.debug(f"Ignoring update for unknown job {job_id}")
                        return False
                    job = self._decode(raw)
                    if not apply(job):
                        pipe.unwatch()
                        return False
                    job.updated_at = datetime.now(timezone.utc)
                    pipe.multi()
                    pipe.set(key, json.dumps(job.to_dict()))
                    pipe.execute()
                    return True
                except redis.WatchError:
                    # Concurrent writer (e.g. the sweeper); reload and retry.
                    continue

    def list_jobs(self) -> list[Job]:
        keys = list(self._redis.scan_iter(match=self._key("*")))
        if not keys:
            return []
        return [self._decode(raw) for raw in self._redis.mget(keys) if raw is not None]

    def delete_job(self, job_id: str) -> bool:
        return bool(self._redis.delete(self._key(job_id)))
