"""Video repository for database operations.

Renditions are queried by video_id rather than through an ORM collection,
so every write is an explicit statement against the session.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from coursemedia.modules.video.exceptions import InvalidStatusTransitionError
from coursemedia.modules.video.models import (
    RenditionStatus,
    Video,
    VideoRendition,
    VideoStatus,
    can_transition,
)


class VideoRepository:
    """Repository for Video CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        course_id: uuid.UUID,
        uploaded_by: uuid.UUID,
        title: str,
        description: Optional[str] = None,
        source_path: Optional[str] = None,
        original_filename: Optional[str] = None,
        file_size: Optional[int] = None,
        video_id: Optional[uuid.UUID] = None,
    ) -> Video:
        """Create a new video in DRAFT.

        Args:
            course_id: Owning course UUID
            uploaded_by: Uploader UUID
            title: Video title
            description: Video description
            source_path: Staged raw upload path
            original_filename: Client-side file name
            file_size: Size of the raw upload in bytes
            video_id: Pre-allocated identifier (generated if omitted)

        Returns:
            Video: Created video instance
        """
        video = Video(
            id=video_id or uuid.uuid4(),
            course_id=course_id,
            uploaded_by=uploaded_by,
            title=title,
            description=description,
            source_path=source_path,
            original_filename=original_filename,
            file_size=file_size,
            status=VideoStatus.DRAFT.value,
            processing_attempts=0,
        )

        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        """Get video by ID.

        Returns:
            Optional[Video]: Video if found, None otherwise
        """
        result = await self.session.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def list_by_status(self, status: VideoStatus, limit: int = 100) -> list[Video]:
        """List videos in a given status, oldest first."""
        result = await self.session.execute(
            select(Video)
            .where(Video.status == VideoStatus(status).value)
            .order_by(Video.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_failed_with_source(self, updated_before: datetime, limit: int = 100) -> list[Video]:
        """List FAILED videos still holding a staged source, last touched before a cutoff."""
        result = await self.session.execute(
            select(Video)
            .where(
                Video.status == VideoStatus.FAILED.value,
                Video.source_path.is_not(None),
                Video.updated_at < updated_before,
            )
            .order_by(Video.updated_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_course(self, course_id: uuid.UUID) -> list[Video]:
        """List videos of a course, newest first."""
        result = await self.session.execute(
            select(Video).where(Video.course_id == course_id).order_by(Video.created_at.desc())
        )
        return list(result.scalars().all())

    async def set_status(self, video: Video, status: VideoStatus) -> Video:
        """Move a video to a new status.

        Raises:
            InvalidStatusTransitionError: If the lifecycle forbids the move
        """
        if not can_transition(video.status, status):
            raise InvalidStatusTransitionError(video.status, VideoStatus(status).value)

        video.status = VideoStatus(status).value
        await self.session.flush()
        return video

    async def start_processing(self, video: Video) -> Video:
        """Enter PROCESSING for a new attempt."""
        await self.set_status(video, VideoStatus.PROCESSING)
        video.processing_attempts = (video.processing_attempts or 0) + 1
        await self.session.flush()
        return video

    async def update(self, video: Video, **kwargs) -> Video:
        """Update plain video columns."""
        for key, value in kwargs.items():
            if hasattr(video, key):
                setattr(video, key, value)
        await self.session.flush()
        return video

    async def delete(self, video: Video) -> None:
        """Delete a video row."""
        await self.session.delete(video)
        await self.session.flush()


class RenditionRepository:
    """Repository for VideoRendition operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get(self, video_id: uuid.UUID, resolution: str) -> Optional[VideoRendition]:
        """Get the rendition of a video at a resolution."""
        result = await self.session.execute(
            select(VideoRendition).where(
                VideoRendition.video_id == video_id,
                VideoRendition.resolution == resolution,
            )
        )
        return result.scalar_one_or_none()

    async def start_attempt(self, video_id: uuid.UUID, resolution: str, bitrate: int) -> VideoRendition:
        """Record a PENDING rendition before its encode starts.

        Resets the existing row for the same resolution so reruns never
        create duplicates.
        """
        rendition = await self.get(video_id, resolution)
        if rendition is None:
            rendition = VideoRendition(
                video_id=video_id,
                resolution=resolution,
                bitrate=bitrate,
                status=RenditionStatus.PENDING.value,
            )
            self.session.add(rendition)
        else:
            rendition.bitrate = bitrate
            rendition.object_key = None
            rendition.file_size = None
            rendition.status = RenditionStatus.PENDING.value

        await self.session.flush()
        return rendition

    async def mark_ready(self, rendition: VideoRendition, object_key: str, file_size: int) -> VideoRendition:
        rendition.object_key = object_key
        rendition.file_size = file_size
        rendition.status = RenditionStatus.READY.value
        await self.session.flush()
        return rendition

    async def mark_failed(self, rendition: VideoRendition) -> VideoRendition:
        rendition.status = RenditionStatus.FAILED.value
        await self.session.flush()
        return rendition

    async def list_for_video(
        self,
        video_id: uuid.UUID,
        status: Optional[RenditionStatus] = None,
    ) -> list[VideoRendition]:
        """List renditions of a video in creation order."""
        query = select(VideoRendition).where(VideoRendition.video_id == video_id)
        if status is not None:
            query = query.where(VideoRendition.status == RenditionStatus(status).value)
        result = await self.session.execute(query.order_by(VideoRendition.created_at, VideoRendition.resolution))
        return list(result.scalars().all())

    async def delete_for_video(self, video_id: uuid.UUID) -> int:
        """Delete every rendition row of a video.

        Returns:
            Number of rows deleted
        """
        result = await self.session.execute(
            delete(VideoRendition).where(VideoRendition.video_id == video_id)
        )
        await self.session.flush()
        return result.rowcount or 0
