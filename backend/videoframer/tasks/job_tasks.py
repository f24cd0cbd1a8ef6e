"""Celery task that executes acquisition and transform jobs in queued mode."""

import asyncio
import logging
from functools import lru_cache

from videoframer.celery_app import celery_app
from videoframer.config import get_settings
from videoframer.exceptions import describe_error
from videoframer.models.job import JobKind

logger = logging.getLogger(__name__)


@lru_cache
def get_worker_runtime():
    """Runtime for this worker process, always backed by the shared Redis store."""
    from videoframer.runtime import build_runtime

    return build_runtime(get_settings(), queued=True)


def retry_countdown(retries: int, base_s: float) -> float:
    """Exponential backoff: base, 2*base, 4*base, ..."""
    return base_s * (2**retries)


@celery_app.task(bind=True, name="videoframer.run_job")
def run_job(self, kind: str, job_id: str) -> dict:
    """
    Execute one job attempt.

    Args:
        kind: JobKind value ("acquisition" or "transform")
        job_id: Id of a job already present in the shared store

    Returns:
        dict with the job id and the status it ended in
    """
    settings = get_settings()
    runtime = get_worker_runtime()
    runner = runtime.backend.runner_for(JobKind(kind))
    attempt = self.request.retries + 1

    try:
        asyncio.run(runner(job_id))
    except Exception as e:
        if attempt < settings.queue_max_attempts:
            countdown = retry_countdown(self.request.retries, settings.queue_backoff_s)
            logger.warning(
                f"Job {job_id} attempt {attempt}/{settings.queue_max_attempts} failed "
                f"({describe_error(e)}); retrying in {countdown:g}s"
            )
            raise self.retry(exc=e, countdown=countdown, max_retries=settings.queue_max_attempts - 1)

        logger.exception(f"Job {job_id} failed after {attempt} attempt(s)")
        runtime.store.fail_job(job_id, describe_error(e))
        return {"job_id": job_id, "status": "failed"}

    job = runtime.store.get_job(job_id)
    return {"job_id": job_id, "status": job.status.value if job else "expired"}
