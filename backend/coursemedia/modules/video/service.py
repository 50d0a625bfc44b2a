"""Video service for business logic.

Implements upload intake (validation and staging), read queries for the API
layer, explicit multi-step deletion, reprocessing requests and the
retention sweep for staged sources of failed videos.
"""

import asyncio
import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coursemedia.core.logging import log_error, log_info, log_warning
from coursemedia.core.metrics import record_upload
from coursemedia.core.storage import (
    BucketKind,
    ObjectStorageGateway,
    StorageError,
    rendition_key,
    thumbnail_key,
)
from coursemedia.modules.video.exceptions import (
    InvalidStatusTransitionError,
    UploadValidationError,
    ValidationViolation,
    VideoNotFoundError,
    VideoServiceError,
)
from coursemedia.modules.video.models import RenditionStatus, Video, VideoStatus
from coursemedia.modules.video.repository import RenditionRepository, VideoRepository
from coursemedia.modules.video.schemas import (
    IncomingFile,
    RenditionResponse,
    StreamInfo,
    UploadProgress,
    VideoStatusResponse,
    VideoUploadRequest,
)

logger = logging.getLogger(__name__)

__all__ = [
    "InvalidStatusTransitionError",
    "UploadConfig",
    "UploadValidationError",
    "ValidationViolation",
    "VideoNotFoundError",
    "VideoService",
    "VideoServiceError",
    "VideoUploadService",
    "get_upload_config",
    "get_upload_service",
    "get_video_service",
    "sanitize_filename",
    "staging_dir",
    "validate_upload",
]

DEFAULT_STREAM_RESOLUTION = "720p"
STAGING_CHUNK_SIZE = 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class UploadConfig:
    """Configuration for upload intake."""

    temp_dir: str
    max_file_size: int = 5_242_880_000
    allowed_extensions: list[str] = field(default_factory=lambda: ["mp4", "mov", "mkv"])
    allowed_mime_types: list[str] = field(default_factory=lambda: [
        "video/mp4",
        "video/quicktime",
        "video/x-matroska",
        "application/octet-stream",
    ])


def get_upload_config() -> UploadConfig:
    """Build the upload configuration from application settings."""
    from coursemedia.core.config import settings

    return UploadConfig(
        temp_dir=settings.VIDEO_TEMP_DIR,
        max_file_size=settings.VIDEO_MAX_UPLOAD_SIZE,
        allowed_extensions=list(settings.VIDEO_ALLOWED_EXTENSIONS),
        allowed_mime_types=list(settings.VIDEO_ALLOWED_MIME_TYPES),
    )


def validate_upload(
    filename: str,
    file_size: int,
    content_type: Optional[str],
    config: UploadConfig,
) -> list[ValidationViolation]:
    """Check an upload against every intake rule.

    Args:
        filename: Client-side file name
        file_size: Declared size in bytes
        content_type: Declared MIME type
        config: Upload limits

    Returns:
        Every violated rule; empty when the upload is acceptable
    """
    violations = []

    if file_size > config.max_file_size:
        violations.append(ValidationViolation(
            rule="file_too_large",
            message=f"File size exceeds maximum allowed size of {config.max_file_size} bytes",
        ))

    allowed_extensions = [ext.lower().lstrip(".") for ext in config.allowed_extensions]
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    if ext not in allowed_extensions:
        violations.append(ValidationViolation(
            rule="extension_not_allowed",
            message=f"File format not allowed. Allowed formats: {', '.join(allowed_extensions)}",
        ))

    mime_type = (content_type or "").split(";")[0].strip().lower()
    if mime_type not in [m.lower() for m in config.allowed_mime_types]:
        violations.append(ValidationViolation(
            rule="mime_type_not_allowed",
            message="Invalid video MIME type",
        ))

    if file_size <= 0:
        violations.append(ValidationViolation(rule="empty_file", message="File is empty"))

    return violations


def sanitize_filename(filename: str) -> str:
    """Reduce a client file name to a safe basename."""
    name = os.path.basename((filename or "").replace("\\", "/"))
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).lstrip(".")
    return name or "upload"


def staging_dir(temp_dir: str, video_id: uuid.UUID) -> str:
    """Directory holding the staged raw upload of a video."""
    return os.path.join(temp_dir, "uploads", str(video_id))


class VideoUploadService:
    """Upload intake: validate, stage and record a new video."""

    def __init__(
        self,
        session: AsyncSession,
        config: UploadConfig,
        enqueue: Optional[Callable[[uuid.UUID], object]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize service.

        Args:
            session: Database session
            config: Upload limits and staging directory
            enqueue: Called with the new video id after commit; no job is
                enqueued when omitted
            logger: Logger for diagnostics
        """
        self.session = session
        self.config = config
        self.enqueue = enqueue
        self.logger = logger or logging.getLogger(__name__)
        self.video_repo = VideoRepository(session)

    def _stage(self, video_id: uuid.UUID, file: IncomingFile) -> tuple[str, int]:
        """Copy the upload stream to the staging directory.

        At most one byte past the size limit is copied, enough to prove the
        stream is too large without writing all of it.
        """
        target_dir = staging_dir(self.config.temp_dir, video_id)
        os.makedirs(target_dir, exist_ok=True)
        path = os.path.join(target_dir, sanitize_filename(file.filename))

        remaining = self.config.max_file_size + 1
        written = 0
        with open(path, "wb") as out:
            while remaining > 0:
                chunk = file.stream.read(min(STAGING_CHUNK_SIZE, remaining))
                if not chunk:
                    break
                out.write(chunk)
                written += len(chunk)
                remaining -= len(chunk)

        return path, written

    def _reject(self, filename: str, violations: list[ValidationViolation]) -> UploadValidationError:
        record_upload("rejected")
        log_warning(
            self.logger,
            "Upload rejected",
            original_filename=filename,
            rules=[v.rule for v in violations],
        )
        return UploadValidationError(violations)

    async def upload_video(self, request: VideoUploadRequest, file: IncomingFile) -> Video:
        """Validate an upload, stage it and create the DRAFT video.

        Args:
            request: Course, uploader and title metadata
            file: Uploaded file

        Returns:
            Video: Created video instance

        Raises:
            UploadValidationError: With every violated rule, checked against
                the declared size and again against the bytes actually
                received; nothing is left on disk or in the database
        """
        violations = validate_upload(file.filename, file.size, file.content_type, self.config)
        if violations:
            raise self._reject(file.filename, violations)

        video_id = uuid.uuid4()

        try:
            source_path, staged_size = await asyncio.to_thread(self._stage, video_id, file)
            # The declared size is client supplied; the staged bytes are authoritative
            violations = validate_upload(file.filename, staged_size, file.content_type, self.config)
            if violations:
                raise self._reject(file.filename, violations)

            video = await self.video_repo.create(
                video_id=video_id,
                course_id=request.course_id,
                uploaded_by=request.uploaded_by,
                title=request.title,
                description=request.description,
                source_path=source_path,
                original_filename=file.filename,
                file_size=staged_size,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            shutil.rmtree(staging_dir(self.config.temp_dir, video_id), ignore_errors=True)
            raise

        record_upload("accepted")
        log_info(self.logger, "Video uploaded", video_id=str(video.id), file_size=staged_size)

        if self.enqueue is not None:
            self.enqueue(video.id)

        return video


class VideoService:
    """Service for video queries, deletion and reprocessing."""

    def __init__(
        self,
        session: AsyncSession,
        storage: ObjectStorageGateway,
        temp_dir: str,
        enqueue: Optional[Callable[..., object]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize service with database session and storage gateway."""
        self.session = session
        self.storage = storage
        self.temp_dir = temp_dir
        self.enqueue = enqueue
        self.logger = logger or logging.getLogger(__name__)
        self.video_repo = VideoRepository(session)
        self.rendition_repo = RenditionRepository(session)

    async def get_video(self, video_id: uuid.UUID) -> Video:
        """Get video by ID.

        Raises:
            VideoNotFoundError: If video not found
        """
        video = await self.video_repo.get_by_id(video_id)
        if not video:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video

    async def get_processing_status(self, video_id: uuid.UUID) -> VideoStatusResponse:
        """Get the video status and the state of each rendition."""
        video = await self.get_video(video_id)
        renditions = await self.rendition_repo.list_for_video(video.id)
        return VideoStatusResponse(
            video_id=video.id,
            status=video.status,
            thumbnail_url=video.thumbnail_url,
            duration=video.duration,
            processing_attempts=video.processing_attempts or 0,
            renditions=[RenditionResponse.model_validate(r) for r in renditions],
        )

    async def get_streaming_url(
        self,
        video_id: uuid.UUID,
        resolution: str = DEFAULT_STREAM_RESOLUTION,
    ) -> Optional[str]:
        """Get a playable URL, preferring the requested resolution.

        Falls back to the first READY rendition; None when nothing is ready.
        """
        video = await self.get_video(video_id)
        ready = await self.rendition_repo.list_for_video(video.id, RenditionStatus.READY)
        if not ready:
            return None

        chosen = next((r for r in ready if r.resolution == resolution), ready[0])
        return self.storage.url(chosen.object_key, BucketKind.VIDEO)

    async def get_available_streams(self, video_id: uuid.UUID) -> list[StreamInfo]:
        """List every READY rendition with its URL."""
        video = await self.get_video(video_id)
        ready = await self.rendition_repo.list_for_video(video.id, RenditionStatus.READY)
        return [
            StreamInfo(
                resolution=r.resolution,
                bitrate=r.bitrate,
                file_size=r.file_size,
                url=self.storage.url(r.object_key, BucketKind.VIDEO),
            )
            for r in ready
        ]

    async def get_thumbnail_url(self, video_id: uuid.UUID) -> Optional[str]:
        """Get the thumbnail URL, re-issued so presigned URLs stay fresh."""
        video = await self.get_video(video_id)
        if not video.thumbnail_url:
            return None
        return self.storage.url(thumbnail_key(video.id), BucketKind.THUMBNAIL)

    async def get_upload_progress(self, video_id: uuid.UUID) -> UploadProgress:
        """Get upload and processing summary for a video."""
        video = await self.get_video(video_id)
        return UploadProgress(
            video_id=video.id,
            title=video.title,
            status=video.status,
            file_size=video.file_size,
            duration=video.duration,
            created_at=video.created_at,
        )

    async def delete_video(self, video_id: uuid.UUID) -> None:
        """Delete a video with its renditions, thumbnail and staged file.

        Rendition objects are removed first; a StorageError there aborts the
        delete and leaves the database untouched. The thumbnail object is
        removed best-effort.

        Raises:
            VideoNotFoundError: If video not found
            StorageError: If a rendition object could not be deleted
        """
        video = await self.get_video(video_id)
        renditions = await self.rendition_repo.list_for_video(video.id)

        for rendition in renditions:
            key = rendition.object_key or rendition_key(video.id, rendition.resolution)
            await asyncio.to_thread(self.storage.delete, key, BucketKind.VIDEO)

        try:
            await asyncio.to_thread(self.storage.delete, thumbnail_key(video.id), BucketKind.THUMBNAIL)
        except StorageError as e:
            log_warning(self.logger, "Thumbnail delete failed", video_id=str(video.id), error=str(e))

        await self.rendition_repo.delete_for_video(video.id)
        await self.video_repo.delete(video)
        await self.session.commit()

        shutil.rmtree(staging_dir(self.temp_dir, video.id), ignore_errors=True)
        log_info(self.logger, "Video deleted", video_id=str(video.id), renditions=len(renditions))

    async def reprocess_video(
        self,
        video_id: uuid.UUID,
        resolutions: Optional[list[str]] = None,
    ) -> Video:
        """Enqueue a fresh processing attempt for a finished video.

        Raises:
            VideoNotFoundError: If video not found
            VideoServiceError: If the video is not READY/FAILED or its staged
                source is gone
        """
        video = await self.get_video(video_id)

        if video.status not in (VideoStatus.READY.value, VideoStatus.FAILED.value):
            raise VideoServiceError(f"Video {video.id} cannot be reprocessed while {video.status}")
        if not video.source_path or not os.path.exists(video.source_path):
            raise VideoServiceError(f"Staged source of video {video.id} is no longer available")

        enqueue = self.enqueue
        if enqueue is None:
            from coursemedia.modules.video.tasks import enqueue_video_processing

            enqueue = enqueue_video_processing

        try:
            enqueue(video.id, resolutions)
        except Exception as e:
            log_error(self.logger, "Failed to enqueue reprocessing", exception=e, video_id=str(video.id))
            raise

        log_info(self.logger, "Video reprocessing enqueued", video_id=str(video.id), resolutions=resolutions)
        return video

    async def purge_failed_sources(self, retention: timedelta, now: Optional[datetime] = None) -> int:
        """Drop the staged source of videos that stayed FAILED past retention.

        A purged video can no longer be reprocessed.

        Returns:
            Number of videos whose source was removed
        """
        cutoff = (now or datetime.now(timezone.utc)) - retention
        videos = await self.video_repo.list_failed_with_source(cutoff)

        for video in videos:
            shutil.rmtree(staging_dir(self.temp_dir, video.id), ignore_errors=True)
            await self.video_repo.update(video, source_path=None)
        await self.session.commit()

        if videos:
            log_info(self.logger, "Purged staged sources of failed videos", count=len(videos))
        return len(videos)


def get_upload_service(session: AsyncSession) -> VideoUploadService:
    """Build the upload intake wired to the job queue."""
    from coursemedia.modules.video.tasks import enqueue_video_processing

    return VideoUploadService(session, get_upload_config(), enqueue=enqueue_video_processing)


def get_video_service(session: AsyncSession) -> VideoService:
    """Build the query/delete service wired to the default storage."""
    from coursemedia.core.storage import get_default_storage

    return VideoService(session, get_default_storage(), get_upload_config().temp_dir)
