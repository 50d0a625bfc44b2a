"""Transcoding module.

Resolution/bitrate table and the FFmpeg-backed engine that probes sources,
extracts thumbnails and encodes renditions.
"""

from coursemedia.modules.transcoding.ffmpeg import (
    EncodeError,
    FFmpegTranscoder,
    MediaTranscoder,
    ProbeError,
    ProbeResult,
    ThumbnailError,
    TranscodeOutput,
    TranscoderConfig,
    TranscodingError,
    get_default_transcoder,
)
from coursemedia.modules.transcoding.models import (
    DEFAULT_BITRATE,
    DEFAULT_RESOLUTIONS,
    RESOLUTION_BITRATES,
    RenditionProfile,
    Resolution,
    get_bitrate,
    parse_resolution_height,
    resolve_profile,
)

__all__ = [
    "EncodeError",
    "FFmpegTranscoder",
    "MediaTranscoder",
    "ProbeError",
    "ProbeResult",
    "ThumbnailError",
    "TranscodeOutput",
    "TranscoderConfig",
    "TranscodingError",
    "get_default_transcoder",
    "DEFAULT_BITRATE",
    "DEFAULT_RESOLUTIONS",
    "RESOLUTION_BITRATES",
    "RenditionProfile",
    "Resolution",
    "get_bitrate",
    "parse_resolution_height",
    "resolve_profile",
]
