"""Video models for the ingestion pipeline.

Implements the Video and VideoRendition models. A Video owns its renditions;
the link is a plain foreign key and deletion is orchestrated explicitly by
the video service.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from coursemedia.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoStatus(str, Enum):
    """Lifecycle status of a video."""

    DRAFT = "draft"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class RenditionStatus(str, Enum):
    """Status of a single rendition."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


# Allowed video status transitions. PROCESSING -> PROCESSING covers a job
# re-delivered after a worker crash; READY/FAILED -> PROCESSING is a fresh
# attempt requested from outside.
VIDEO_STATUS_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.DRAFT: frozenset({VideoStatus.PROCESSING}),
    VideoStatus.PROCESSING: frozenset({VideoStatus.PROCESSING, VideoStatus.READY, VideoStatus.FAILED}),
    VideoStatus.READY: frozenset({VideoStatus.PROCESSING}),
    VideoStatus.FAILED: frozenset({VideoStatus.PROCESSING}),
}


def can_transition(current: VideoStatus, target: VideoStatus) -> bool:
    """Check whether a video may move from one status to another."""
    return VideoStatus(target) in VIDEO_STATUS_TRANSITIONS[VideoStatus(current)]


class Video(Base):
    """Video lesson uploaded to a course.

    Holds lifecycle status, the staged raw source path while processing is
    pending, the thumbnail URL and the probed duration.
    """

    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    uploaded_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(50), default=VideoStatus.DRAFT.value, index=True)

    # Staged raw upload; cleared once the video is READY
    source_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    original_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # in seconds
    processing_attempts: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def is_ready(self) -> bool:
        """Check if video is ready for streaming."""
        return self.status == VideoStatus.READY.value

    def is_processing(self) -> bool:
        """Check if a processing attempt is in flight."""
        return self.status == VideoStatus.PROCESSING.value

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, title={self.title!r}, status={self.status})>"


class VideoRendition(Base):
    """One resolution-specific encode of a video."""

    __tablename__ = "video_renditions"
    __table_args__ = (
        UniqueConstraint("video_id", "resolution", name="uq_video_renditions_video_resolution"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    resolution: Mapped[str] = mapped_column(String(20), nullable=False)
    bitrate: Mapped[int] = mapped_column(Integer, nullable=False)  # bits per second
    object_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default=RenditionStatus.PENDING.value)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def is_ready(self) -> bool:
        return self.status == RenditionStatus.READY.value

    def __repr__(self) -> str:
        return f"<VideoRendition(video_id={self.video_id}, resolution={self.resolution}, status={self.status})>"
