"""Celery worker configuration for API Territoires.

Runs periodic housekeeping outside the API process. Batch matching
itself runs in the API's in-process scheduler.
"""

from celery import Celery
from celery.schedules import crontab

from .config import get_settings

settings = get_settings()

app = Celery(
    "territoires",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=600,
    task_soft_time_limit=540,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_routes={
        "territoires.batch.*": {"queue": "maintenance"},
    },
    task_default_retry_delay=60,
    task_max_retries=3,
)

app.conf.beat_schedule = {
    # Expired batch requests (every hour, on the hour)
    "cleanup-expired-batches": {
        "task": "territoires.batch.tasks.cleanup_expired_batches",
        "schedule": crontab(minute=0),
        "options": {"queue": "maintenance"},
    },
}


app.autodiscover_tasks(["territoires.batch.tasks"], force=True)
