"""Assembles the services for one process.

The execution strategy is chosen once, here, from a broker reachability
probe. Everything above this module sees the same interfaces in both modes.
"""

import logging
from dataclasses import dataclass

import redis

from videoframer.config import Settings, get_settings
from videoframer.models.job import JobKind
from videoframer.services.acquisition_service import AcquisitionService
from videoframer.services.execution_backend import (
    DirectExecutionBackend,
    ExecutionBackend,
    QueuedExecutionBackend,
    probe_broker,
)
from videoframer.services.expiry_sweeper import ExpirySweeper
from videoframer.services.job_store import InMemoryJobStore, JobStore, RedisJobStore
from videoframer.services.overlay_catalog import OverlayCatalog
from videoframer.services.rate_limiter import RateLimiter
from videoframer.services.transform_service import TransformService

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: JobStore
    backend: ExecutionBackend
    catalog: OverlayCatalog
    acquisition: AcquisitionService
    transform: TransformService
    rate_limiter: RateLimiter
    sweeper: ExpirySweeper

    @property
    def mode(self) -> str:
        return self.backend.mode


def build_runtime(settings: Settings | None = None, *, queued: bool | None = None) -> Runtime:
    """Wire up stores and services.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        queued: Force queued (True) or direct (False) mode; None probes the broker
    """
    settings = settings or get_settings()
    for directory in settings.artifact_dirs:
        directory.mkdir(parents=True, exist_ok=True)

    if queued is None:
        queued = settings.queue_enabled and probe_broker(
            settings.redis_url, settings.broker_probe_timeout_s
        )

    store: JobStore
    backend: ExecutionBackend
    if queued:
        # Imported here: the task module builds its own runtime through this one.
        from videoframer.tasks.job_tasks import run_job

        store = RedisJobStore(redis.Redis.from_url(settings.redis_url), prefix=settings.queue_name)
        backend = QueuedExecutionBackend(store, run_job, queue=settings.queue_name)
    else:
        store = InMemoryJobStore()
        backend = DirectExecutionBackend(store)

    catalog = OverlayCatalog(settings.overlays_dir)
    acquisition = AcquisitionService(store, backend, settings)
    transform = TransformService(store, backend, catalog, settings)
    backend.register(JobKind.ACQUISITION, acquisition.run)
    backend.register(JobKind.TRANSFORM, transform.run)

    rate_limiter = RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_s)
    sweeper = ExpirySweeper(
        settings.artifact_dirs,
        max_age_s=settings.artifact_ttl_s,
        interval_s=settings.sweep_interval_s,
        store=store,
        rate_limiter=rate_limiter,
    )

    logger.info(f"Runtime ready in {backend.mode} mode (storage: {settings.storage_root})")
    return Runtime(
        settings=settings,
        store=store,
        backend=backend,
        catalog=catalog,
        acquisition=acquisition,
        transform=transform,
        rate_limiter=rate_limiter,
        sweeper=sweeper,
    )
