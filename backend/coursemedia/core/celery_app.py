"""Celery application configuration."""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from coursemedia.core.config import settings

celery_app = Celery(
    "coursemedia",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Default for jobs on the default ladder; enqueue sets one per job
    task_time_limit=settings.processing_time_limit(len(settings.VIDEO_DEFAULT_RESOLUTIONS)),
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "purge-failed-video-sources": {
        "task": "video.purge_failed_sources",
        "schedule": float(settings.VIDEO_SOURCE_PURGE_INTERVAL_SECONDS),
    },
}

celery_app.autodiscover_tasks(["coursemedia.modules.video"])


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Replace Celery's logging setup with structured logging."""
    from coursemedia.core.logging import setup_logging
    from coursemedia.core.metrics import set_app_info

    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    set_app_info(settings.VERSION, settings.ENVIRONMENT)
