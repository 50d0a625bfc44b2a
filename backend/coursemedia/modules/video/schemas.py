"""Pydantic schemas for video module.

Defines upload input, job options and the read models exposed to the API
layer.
"""

import re
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coursemedia.modules.video.models import RenditionStatus, VideoStatus

MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 5000

_RESOLUTION_LABEL = re.compile(r"^[1-9]\d*p$")


class VideoUploadRequest(BaseModel):
    """Metadata accompanying an uploaded file."""

    course_id: uuid.UUID
    uploaded_by: uuid.UUID
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)


class IncomingFile(BaseModel):
    """An uploaded file as handed over by the web layer.

    ``stream`` is any readable binary file object.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    filename: str
    content_type: Optional[str] = None
    size: int = Field(..., ge=0)
    stream: Any = Field(None, exclude=True)


class ProcessingOptions(BaseModel):
    """Options carried by a processing job message."""

    resolutions: Optional[list[str]] = None

    @field_validator("resolutions")
    @classmethod
    def validate_resolutions(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        cleaned = list(dict.fromkeys(label.strip().lower() for label in v if label.strip()))
        if not cleaned:
            raise ValueError("At least one resolution is required")
        invalid = [label for label in cleaned if not _RESOLUTION_LABEL.match(label)]
        if invalid:
            raise ValueError(f"Invalid resolution labels: {', '.join(invalid)}")
        return cleaned


class RenditionResponse(BaseModel):
    """Per-resolution processing state."""

    model_config = ConfigDict(from_attributes=True)

    resolution: str
    bitrate: int
    status: RenditionStatus
    file_size: Optional[int] = None
    object_key: Optional[str] = None


class VideoResponse(BaseModel):
    """Video record as seen by readers."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    course_id: uuid.UUID
    uploaded_by: uuid.UUID
    title: str
    description: Optional[str] = None
    status: VideoStatus
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class VideoStatusResponse(BaseModel):
    """Video status plus the state of every rendition."""

    video_id: uuid.UUID
    status: VideoStatus
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    processing_attempts: int = 0
    renditions: list[RenditionResponse] = Field(default_factory=list)


class StreamInfo(BaseModel):
    """A playable rendition."""

    resolution: str
    bitrate: int
    file_size: Optional[int] = None
    url: str


class UploadProgress(BaseModel):
    """Upload and processing summary of a video."""

    video_id: uuid.UUID
    title: str
    status: VideoStatus
    file_size: Optional[int] = None
    duration: Optional[int] = None
    created_at: datetime


class ProcessingReport(BaseModel):
    """Outcome of one processing job."""

    video_id: uuid.UUID
    status: VideoStatus
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    renditions: dict[str, RenditionStatus] = Field(default_factory=dict)
    error: Optional[str] = None

    def ready_count(self) -> int:
        return sum(1 for status in self.renditions.values() if status == RenditionStatus.READY)
