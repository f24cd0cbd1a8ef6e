"""Celery application configuration."""

from celery import Celery

from videoframer.config import get_settings

settings = get_settings()

celery_app = Celery(
    "videoframer",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["videoframer.tasks.job_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_default_queue=settings.queue_name,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes max per job (artifact TTL)
    task_soft_time_limit=1700,
    worker_prefetch_multiplier=1,  # Process one task at a time
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,  # Requeue if worker dies
    result_expires=3600,
)
