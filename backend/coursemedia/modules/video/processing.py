"""Video processing orchestrator.

Drives one video through DRAFT -> PROCESSING -> READY/FAILED: checks the
transcoding engine, probes the staged source, produces a best-effort
thumbnail and encodes each requested rendition independently. The job's
private working directory is removed whatever the outcome.
"""

import asyncio
import logging
import os
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coursemedia.core.logging import log_error, log_info, log_warning
from coursemedia.core.metrics import (
    observe_transcode_duration,
    record_processing_job,
    record_rendition,
)
from coursemedia.core.storage import BucketKind, ObjectStorageGateway, rendition_key, thumbnail_key
from coursemedia.modules.transcoding.ffmpeg import EncodeError, MediaTranscoder, TranscodingError
from coursemedia.modules.transcoding.models import DEFAULT_RESOLUTIONS, RenditionProfile, resolve_profile
from coursemedia.modules.video.exceptions import VideoServiceError
from coursemedia.modules.video.models import RenditionStatus, Video, VideoStatus
from coursemedia.modules.video.repository import RenditionRepository, VideoRepository
from coursemedia.modules.video.schemas import ProcessingReport
from coursemedia.modules.video.service import staging_dir

logger = logging.getLogger(__name__)


class PreconditionError(VideoServiceError):
    """Raised when a job cannot start: engine unavailable or source missing."""

    pass


@dataclass
class ProcessingConfig:
    """Configuration for the processing orchestrator."""

    temp_dir: str
    default_resolutions: list[str] = field(default_factory=lambda: list(DEFAULT_RESOLUTIONS))
    bitrate_overrides: dict[str, int] = field(default_factory=dict)
    thumbnail_offset_seconds: float = 2
    max_parallel_encodes: int = 1
    fail_when_no_rendition_ready: bool = True


def get_processing_config() -> ProcessingConfig:
    """Build the orchestrator configuration from application settings."""
    from coursemedia.core.config import settings

    for label in settings.VIDEO_DEFAULT_RESOLUTIONS:
        resolve_profile(label)

    return ProcessingConfig(
        temp_dir=settings.VIDEO_TEMP_DIR,
        default_resolutions=list(settings.VIDEO_DEFAULT_RESOLUTIONS),
        bitrate_overrides=dict(settings.VIDEO_BITRATE_OVERRIDES),
        thumbnail_offset_seconds=settings.THUMBNAIL_OFFSET_SECONDS,
        max_parallel_encodes=settings.VIDEO_MAX_PARALLEL_ENCODES,
        fail_when_no_rendition_ready=settings.VIDEO_FAIL_WHEN_NO_RENDITION_READY,
    )


class VideoProcessingService:
    """Processing orchestrator; the only writer of processing state."""

    def __init__(
        self,
        session: AsyncSession,
        transcoder: MediaTranscoder,
        storage: ObjectStorageGateway,
        config: ProcessingConfig,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize orchestrator.

        Args:
            session: Database session, used for every write of this job
            transcoder: Media transcoding capability
            storage: Object storage gateway
            config: Processing configuration
            logger: Logger for diagnostics
        """
        self.session = session
        self.transcoder = transcoder
        self.storage = storage
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.video_repo = VideoRepository(session)
        self.rendition_repo = RenditionRepository(session)
        # All session writes of a job go through this lock
        self._write_lock = asyncio.Lock()

    async def process_video(
        self,
        video_id: uuid.UUID,
        resolutions: Optional[list[str]] = None,
    ) -> Optional[ProcessingReport]:
        """Run one processing job.

        Args:
            video_id: Video UUID
            resolutions: Target resolution labels (configured defaults if omitted)

        Returns:
            ProcessingReport, or None when the video no longer exists

        Raises:
            ValueError: If a resolution label is malformed; the video is left
                untouched
        """
        video = await self.video_repo.get_by_id(video_id)
        if video is None:
            log_warning(self.logger, "Processing job references unknown video", video_id=str(video_id))
            record_processing_job("not_found")
            return None

        labels = list(dict.fromkeys(resolutions or self.config.default_resolutions))
        profiles = [resolve_profile(label, self.config.bitrate_overrides) for label in labels]

        if video.is_processing():
            log_warning(self.logger, "Resuming video left in processing", video_id=str(video.id))

        await self.video_repo.start_processing(video)
        await self.session.commit()
        log_info(
            self.logger,
            "Video processing started",
            video_id=str(video.id),
            resolutions=labels,
            attempt=video.processing_attempts,
        )

        outcomes: dict[str, RenditionStatus] = {}
        error: Optional[str] = None
        job_dir: Optional[str] = None

        try:
            job_dir = self._create_job_dir(video.id)
            source_path = await self._check_preconditions(video)
            await self._probe_duration(video, source_path)
            await self._generate_thumbnail(video, source_path, job_dir)
            outcomes = await self._encode_renditions(video, source_path, profiles, job_dir)

            final_status = VideoStatus.READY
            if self.config.fail_when_no_rendition_ready and RenditionStatus.READY not in outcomes.values():
                final_status = VideoStatus.FAILED
                error = "No rendition reached READY"
        except Exception as e:
            log_error(self.logger, "Video processing failed", exception=e, video_id=str(video_id))
            error = str(e)
            final_status = VideoStatus.FAILED
            await self.session.rollback()
            video = await self.video_repo.get_by_id(video_id)
            if video is None:
                record_processing_job("not_found")
                return None
            await self._fail_pending_renditions(video.id)
            outcomes = {
                r.resolution: RenditionStatus(r.status)
                for r in await self.rendition_repo.list_for_video(video.id)
                if r.resolution in labels
            }
        finally:
            if job_dir is not None:
                shutil.rmtree(job_dir, ignore_errors=True)

        if final_status == VideoStatus.READY:
            self._remove_staged_source(video)
            video.source_path = None

        await self.video_repo.set_status(video, final_status)
        await self.session.commit()
        record_processing_job(final_status.value)

        log_info(
            self.logger,
            "Video processing finished",
            video_id=str(video.id),
            status=final_status.value,
            renditions={label: status.value for label, status in outcomes.items()},
        )

        return ProcessingReport(
            video_id=video.id,
            status=final_status,
            thumbnail_url=video.thumbnail_url,
            duration=video.duration,
            renditions=outcomes,
            error=error,
        )

    def _create_job_dir(self, video_id: uuid.UUID) -> str:
        jobs_root = os.path.join(self.config.temp_dir, "jobs")
        os.makedirs(jobs_root, exist_ok=True)
        return tempfile.mkdtemp(prefix=f"{video_id}-", dir=jobs_root)

    async def _check_preconditions(self, video: Video) -> str:
        """Fail the job early when it cannot possibly succeed.

        Returns:
            Path of the staged source
        """
        if not await asyncio.to_thread(self.transcoder.is_available):
            raise PreconditionError("Transcoding engine is not available")

        source_path = video.source_path
        if not source_path or not os.path.exists(source_path):
            raise PreconditionError(f"Staged source is missing: {source_path}")

        return source_path

    async def _probe_duration(self, video: Video, source_path: str) -> None:
        try:
            probe = await asyncio.to_thread(self.transcoder.probe, source_path)
        except TranscodingError as e:
            log_warning(self.logger, "Probe failed, duration left unknown", video_id=str(video.id), error=str(e))
            return

        async with self._write_lock:
            video.duration = int(probe.duration_seconds)
            await self.session.commit()

    async def _generate_thumbnail(self, video: Video, source_path: str, job_dir: str) -> None:
        """Best-effort thumbnail; failures are logged and swallowed."""
        output_path = os.path.join(job_dir, "thumbnail.jpg")
        key = thumbnail_key(video.id)

        try:
            await asyncio.to_thread(
                self.transcoder.thumbnail,
                source_path,
                output_path,
                self.config.thumbnail_offset_seconds,
            )
            await asyncio.to_thread(self.storage.upload, output_path, key, BucketKind.THUMBNAIL)
            url = self.storage.url(key, BucketKind.THUMBNAIL)
        except Exception as e:
            log_warning(self.logger, "Thumbnail generation failed", video_id=str(video.id), error=str(e))
            return

        async with self._write_lock:
            video.thumbnail_url = url
            await self.session.commit()

    async def _encode_renditions(
        self,
        video: Video,
        source_path: str,
        profiles: list[RenditionProfile],
        job_dir: str,
    ) -> dict[str, RenditionStatus]:
        """Encode every profile; one unit's failure never stops the others."""
        if self.config.max_parallel_encodes <= 1:
            outcomes = {}
            for profile in profiles:
                outcomes[profile.label] = await self._process_rendition(video, source_path, profile, job_dir)
            return outcomes

        semaphore = asyncio.Semaphore(self.config.max_parallel_encodes)

        async def bounded(profile: RenditionProfile) -> RenditionStatus:
            async with semaphore:
                return await self._process_rendition(video, source_path, profile, job_dir)

        results = await asyncio.gather(*(bounded(profile) for profile in profiles), return_exceptions=True)

        # Only persistence errors escape a unit; surface them after every unit settled
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip((profile.label for profile in profiles), results))

    async def _process_rendition(
        self,
        video: Video,
        source_path: str,
        profile: RenditionProfile,
        job_dir: str,
    ) -> RenditionStatus:
        """Encode and upload one resolution."""
        async with self._write_lock:
            rendition = await self.rendition_repo.start_attempt(video.id, profile.label, profile.bitrate)
            await self.session.commit()

        output_path = os.path.join(job_dir, f"{profile.label}.mp4")
        key = rendition_key(video.id, profile.label)
        started = time.monotonic()

        try:
            result = await asyncio.to_thread(
                self.transcoder.transcode,
                source_path,
                output_path,
                profile.label,
                self.config.bitrate_overrides,
            )
            observe_transcode_duration(profile.label, time.monotonic() - started)
            if not result.success:
                raise EncodeError(f"Encode of {profile.label} failed", stderr=result.error_message)

            uploaded = await asyncio.to_thread(self.storage.upload, output_path, key, BucketKind.VIDEO)
        except Exception as e:
            log_error(
                self.logger,
                "Rendition failed",
                exception=e,
                video_id=str(video.id),
                resolution=profile.label,
                stderr=getattr(e, "stderr", None),
            )
            async with self._write_lock:
                await self.rendition_repo.mark_failed(rendition)
                await self.session.commit()
            record_rendition(profile.label, RenditionStatus.FAILED.value)
            return RenditionStatus.FAILED
        finally:
            try:
                os.remove(output_path)
            except OSError:
                pass

        async with self._write_lock:
            await self.rendition_repo.mark_ready(rendition, uploaded.key, uploaded.file_size)
            await self.session.commit()

        record_rendition(profile.label, RenditionStatus.READY.value)
        log_info(
            self.logger,
            "Rendition ready",
            video_id=str(video.id),
            resolution=profile.label,
            object_key=uploaded.key,
            file_size=uploaded.file_size,
        )
        return RenditionStatus.READY

    async def _fail_pending_renditions(self, video_id: uuid.UUID) -> None:
        """Close out renditions an aborted job left PENDING."""
        pending = await self.rendition_repo.list_for_video(video_id, RenditionStatus.PENDING)
        for rendition in pending:
            await self.rendition_repo.mark_failed(rendition)

    def _remove_staged_source(self, video: Video) -> None:
        if video.source_path:
            try:
                os.remove(video.source_path)
            except OSError as e:
                log_warning(self.logger, "Could not remove staged source", video_id=str(video.id), error=str(e))
        shutil.rmtree(staging_dir(self.config.temp_dir, video.id), ignore_errors=True)
