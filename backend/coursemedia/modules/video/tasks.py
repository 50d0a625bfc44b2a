"""Celery tasks for video processing.

One delivered message ``{video_id, options}`` runs one orchestrator job.
A Redis lock keyed by the video id keeps at most one job in flight per video.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Optional

from celery import Task
from celery.signals import worker_ready
from pydantic import ValidationError
from redis.exceptions import LockError

from coursemedia.core.celery_app import celery_app
from coursemedia.core.config import settings
from coursemedia.core.database import async_session_maker
from coursemedia.core.logging import correlation_scope, log_error, log_info, log_warning
from coursemedia.core.metrics import record_processing_job
from coursemedia.core.redis import create_redis_client, processing_lock_key
from coursemedia.core.storage import ObjectStorageGateway, get_default_storage
from coursemedia.modules.transcoding.ffmpeg import MediaTranscoder, get_default_transcoder
from coursemedia.modules.video.processing import (
    ProcessingConfig,
    VideoProcessingService,
    get_processing_config,
)
from coursemedia.modules.video.schemas import ProcessingOptions
from coursemedia.modules.video.service import VideoService

logger = logging.getLogger(__name__)


def job_resolution_count(resolutions: Optional[list[str]]) -> int:
    """Number of renditions a job will encode."""
    return len(resolutions) if resolutions else len(settings.VIDEO_DEFAULT_RESOLUTIONS)


class ProcessVideoTask(Task):
    """Base task for video processing.

    Processing is never retried automatically; a failed video stays FAILED
    until someone requests a reprocess.
    """

    abstract = True
    max_retries = 0

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Log a job that crashed outside the orchestrator."""
        video_id = args[0] if args else kwargs.get("video_id")
        log_error(logger, "Video processing task crashed", exception=exc, video_id=video_id, task_id=task_id)


async def run_processing_job(
    video_id: uuid.UUID,
    resolutions: Optional[list[str]] = None,
    session_maker=async_session_maker,
    transcoder: Optional[MediaTranscoder] = None,
    storage: Optional[ObjectStorageGateway] = None,
    config: Optional[ProcessingConfig] = None,
) -> dict:
    """Run the orchestrator for one video in a fresh session.

    Returns:
        The processing report as a dict, or ``{"status": "not_found"}``
    """
    async with session_maker() as session:
        service = VideoProcessingService(
            session,
            transcoder or get_default_transcoder(),
            storage or get_default_storage(),
            config or get_processing_config(),
        )
        report = await service.process_video(video_id, resolutions)

    if report is None:
        return {"video_id": str(video_id), "status": "not_found"}
    return report.model_dump(mode="json")


async def process_with_lock(
    video_id: uuid.UUID,
    resolutions: Optional[list[str]] = None,
    redis_client=None,
) -> dict:
    """Run one job while holding the per-video processing lock.

    Returns ``{"status": "skipped"}`` without touching the video when another
    job for the same video holds the lock. The lock outlives the job's hard
    time limit, so it cannot expire while the job may still run.
    """
    client = redis_client or create_redis_client()
    lock = client.lock(
        processing_lock_key(video_id),
        timeout=settings.processing_lock_ttl(job_resolution_count(resolutions)),
        blocking=False,
    )

    try:
        if not await lock.acquire():
            log_warning(logger, "Video is already being processed", video_id=str(video_id))
            record_processing_job("skipped")
            return {"video_id": str(video_id), "status": "skipped"}

        try:
            return await run_processing_job(video_id, resolutions)
        finally:
            try:
                await lock.release()
            except LockError as e:
                log_warning(logger, "Processing lock expired before release", video_id=str(video_id), error=str(e))
    finally:
        if redis_client is None:
            await client.aclose()


@celery_app.task(bind=True, base=ProcessVideoTask, name="video.process_video")
def process_video_task(
    self: ProcessVideoTask,
    video_id: str,
    options: Optional[dict] = None,
) -> dict:
    """Process an uploaded video into renditions and a thumbnail.

    Args:
        video_id: UUID of the video
        options: Optional ``{"resolutions": [...]}``

    Returns:
        dict: Processing report
    """
    try:
        parsed_id = uuid.UUID(str(video_id))
        parsed_options = ProcessingOptions.model_validate(options or {})
    except (ValueError, ValidationError) as e:
        log_warning(logger, "Dropping invalid processing job", video_id=str(video_id), error=str(e))
        record_processing_job("invalid")
        return {"video_id": str(video_id), "status": "invalid", "error": str(e)}

    with correlation_scope(str(parsed_id)):
        log_info(logger, "Processing job received", video_id=str(parsed_id), task_id=self.request.id)
        return asyncio.run(process_with_lock(parsed_id, parsed_options.resolutions))


def enqueue_video_processing(video_id: uuid.UUID, resolutions: Optional[list[str]] = None):
    """Queue a processing job for a video.

    The task time limit grows with the number of renditions requested.

    Args:
        video_id: UUID of the video
        resolutions: Target resolutions (configured defaults if omitted)

    Returns:
        AsyncResult of the queued task
    """
    options = None
    if resolutions:
        options = ProcessingOptions(resolutions=resolutions).model_dump(exclude_none=True)

    labels = options["resolutions"] if options else None
    return process_video_task.apply_async(
        args=[str(video_id), options],
        time_limit=settings.processing_time_limit(job_resolution_count(labels)),
    )


async def run_source_purge(
    session_maker=async_session_maker,
    storage: Optional[ObjectStorageGateway] = None,
    temp_dir: Optional[str] = None,
    retention_hours: Optional[int] = None,
) -> dict:
    """Purge staged sources of videos that stayed FAILED past retention."""
    hours = settings.VIDEO_FAILED_SOURCE_RETENTION_HOURS if retention_hours is None else retention_hours

    async with session_maker() as session:
        service = VideoService(
            session,
            storage or get_default_storage(),
            temp_dir or settings.VIDEO_TEMP_DIR,
        )
        purged = await service.purge_failed_sources(timedelta(hours=hours))

    return {"purged": purged, "retention_hours": hours}


@celery_app.task(name="video.purge_failed_sources")
def purge_failed_sources_task() -> dict:
    """Periodic sweep removing staged sources of long-FAILED videos."""
    return asyncio.run(run_source_purge())


@worker_ready.connect
def provision_buckets(**kwargs) -> None:
    """Create missing storage buckets when a worker starts."""
    ready = get_default_storage().ensure_buckets()
    log_info(logger, "Storage buckets checked", buckets=ready)
