"""Video ingestion module."""

from coursemedia.modules.video.exceptions import (
    InvalidStatusTransitionError,
    UploadValidationError,
    ValidationViolation,
    VideoNotFoundError,
    VideoServiceError,
)
from coursemedia.modules.video.models import (
    RenditionStatus,
    Video,
    VideoRendition,
    VideoStatus,
    can_transition,
)
from coursemedia.modules.video.repository import RenditionRepository, VideoRepository
from coursemedia.modules.video.service import (
    UploadConfig,
    VideoService,
    VideoUploadService,
    validate_upload,
)
from coursemedia.modules.video.processing import (
    PreconditionError,
    ProcessingConfig,
    VideoProcessingService,
)

__all__ = [
    # Errors
    "InvalidStatusTransitionError",
    "PreconditionError",
    "UploadValidationError",
    "ValidationViolation",
    "VideoNotFoundError",
    "VideoServiceError",
    # Models
    "RenditionStatus",
    "Video",
    "VideoRendition",
    "VideoStatus",
    "can_transition",
    # Repositories
    "RenditionRepository",
    "VideoRepository",
    # Services
    "ProcessingConfig",
    "UploadConfig",
    "VideoProcessingService",
    "VideoService",
    "VideoUploadService",
    "validate_upload",
]
