"""
Celery Application — background processing for uploaded drawings.
Outline extraction is CPU-bound; one drawing per worker process at a time.
"""
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from scaffold_outline.config import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    TASK_SOFT_TIME_LIMIT,
    TASK_TIME_LIMIT,
)
from scaffold_outline.services.logging_config import setup_logging

celery_app = Celery(
    "scaffold_outline",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["scaffold_outline.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_soft_time_limit=TASK_SOFT_TIME_LIMIT,
    task_time_limit=TASK_TIME_LIMIT,
    result_expires=3600,        # Results expire after 1 hour
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Replace Celery's logging setup with the structured JSON handler."""
    setup_logging()
