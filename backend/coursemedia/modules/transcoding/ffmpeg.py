"""FFmpeg transcoding engine.

Wraps the ffmpeg/ffprobe command line tools: probing source metadata,
extracting a thumbnail frame, and re-encoding a source to one rendition.
Every invocation runs with a bounded timeout.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from coursemedia.modules.transcoding.models import RenditionProfile, resolve_profile

logger = logging.getLogger(__name__)

# Characters of stderr kept for diagnostics
STDERR_TAIL_CHARS = 2000


class TranscodingError(Exception):
    """Base error for media tool failures."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr


class ProbeError(TranscodingError):
    """Raised when ffprobe fails or its output cannot be parsed."""
    pass


class ThumbnailError(TranscodingError):
    """Raised when a thumbnail frame cannot be extracted."""
    pass


class EncodeError(TranscodingError):
    """Raised when a rendition encode fails."""
    pass


@dataclass
class TranscoderConfig:
    """Configuration for the FFmpeg transcoder."""
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    probe_timeout: int = 30
    thumbnail_timeout: int = 60
    transcode_timeout: int = 3600
    version_timeout: int = 5
    thumbnail_width: int = 320
    video_codec: str = "libx264"
    preset: str = "medium"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"


@dataclass
class ProbeResult:
    """Source media metadata."""
    duration_seconds: float
    width: Optional[int]
    height: Optional[int]
    codec: Optional[str]
    byte_size: int


@dataclass
class TranscodeOutput:
    """Result of transcoding operation."""
    success: bool
    output_path: str
    resolution: str
    height: int
    bitrate: int
    file_size: int = 0
    error_message: Optional[str] = None


class MediaTranscoder(Protocol):
    """Capability used by the processing orchestrator."""

    def is_available(self) -> bool: ...

    def probe(self, source_path: str) -> ProbeResult: ...

    def thumbnail(self, source_path: str, output_path: str, at_seconds: float = 2) -> str: ...

    def transcode(
        self,
        source_path: str,
        output_path: str,
        resolution: str,
        bitrates: Optional[Mapping[str, int]] = None,
    ) -> TranscodeOutput: ...


def _tail(text: Optional[str]) -> str:
    return (text or "")[-STDERR_TAIL_CHARS:]


class FFmpegTranscoder:
    """FFmpeg-based video transcoder."""

    def __init__(
        self,
        config: Optional[TranscoderConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize transcoder.

        Args:
            config: Binary paths, timeouts and encoding settings
            logger: Logger for diagnostics
        """
        self.config = config or TranscoderConfig()
        self.logger = logger or logging.getLogger(__name__)

    def _run(self, cmd: list[str], timeout: int) -> subprocess.CompletedProcess:
        self.logger.debug("Running %s", " ".join(cmd))
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)

    def is_available(self) -> bool:
        """Check that the ffmpeg binary runs. Never raises."""
        try:
            result = self._run([self.config.ffmpeg_path, "-version"], self.config.version_timeout)
        except (OSError, subprocess.SubprocessError) as e:
            self.logger.warning("ffmpeg is not available: %s", e)
            return False
        return result.returncode == 0

    def build_probe_command(self, source_path: str) -> list[str]:
        return [
            self.config.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration,size:stream=width,height,codec_name,codec_type",
            "-of", "json",
            source_path,
        ]

    def probe(self, source_path: str) -> ProbeResult:
        """Get source metadata using ffprobe.

        Args:
            source_path: Path to the media file

        Returns:
            ProbeResult with duration, first video stream geometry and size

        Raises:
            ProbeError: If ffprobe fails, times out or prints unusable output
        """
        cmd = self.build_probe_command(source_path)

        try:
            result = self._run(cmd, self.config.probe_timeout)
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"ffprobe timed out after {self.config.probe_timeout}s") from e
        except OSError as e:
            raise ProbeError(f"ffprobe could not be started: {e}") from e

        if result.returncode != 0:
            raise ProbeError(
                f"ffprobe exited with code {result.returncode}",
                stderr=_tail(result.stderr),
            )

        try:
            info = json.loads(result.stdout)
            fmt = info["format"]
            duration = float(fmt["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise ProbeError(f"Unparseable ffprobe output: {e}") from e

        width = height = codec = None
        for stream in info.get("streams", []):
            if stream.get("codec_type") == "video":
                width = stream.get("width")
                height = stream.get("height")
                codec = stream.get("codec_name")
                break

        try:
            byte_size = int(fmt.get("size") or os.path.getsize(source_path))
        except (ValueError, OSError):
            byte_size = 0

        return ProbeResult(
            duration_seconds=duration,
            width=width,
            height=height,
            codec=codec,
            byte_size=byte_size,
        )

    def build_thumbnail_command(self, source_path: str, output_path: str, at_seconds: float) -> list[str]:
        return [
            self.config.ffmpeg_path,
            "-y",
            "-i", source_path,
            "-ss", str(at_seconds),
            "-vf", f"scale={self.config.thumbnail_width}:-1",
            "-vframes", "1",
            output_path,
        ]

    def thumbnail(self, source_path: str, output_path: str, at_seconds: float = 2) -> str:
        """Extract a single frame scaled to the thumbnail width.

        Returns:
            The output path

        Raises:
            ThumbnailError: If no frame could be written
        """
        cmd = self.build_thumbnail_command(source_path, output_path, at_seconds)

        try:
            result = self._run(cmd, self.config.thumbnail_timeout)
        except subprocess.TimeoutExpired as e:
            raise ThumbnailError(f"Thumbnail extraction timed out after {self.config.thumbnail_timeout}s") from e
        except OSError as e:
            raise ThumbnailError(f"ffmpeg could not be started: {e}") from e

        if result.returncode != 0 or not os.path.exists(output_path):
            raise ThumbnailError(
                f"Thumbnail extraction failed with code {result.returncode}",
                stderr=_tail(result.stderr),
            )

        return output_path

    def build_transcode_command(self, source_path: str, output_path: str, profile: RenditionProfile) -> list[str]:
        """Build FFmpeg command for one rendition.

        Height is fixed by the profile; width follows the source aspect ratio
        (rounded to an even number for the encoder).
        """
        return [
            self.config.ffmpeg_path,
            "-y",  # Overwrite output
            "-i", source_path,
            # Video settings
            "-vf", f"scale=-2:{profile.height}",
            "-c:v", self.config.video_codec,
            "-preset", self.config.preset,
            "-b:v", str(profile.bitrate),
            # Audio settings
            "-c:a", self.config.audio_codec,
            "-b:a", self.config.audio_bitrate,
            # Progressive download
            "-movflags", "+faststart",
            output_path,
        ]

    def transcode(
        self,
        source_path: str,
        output_path: str,
        resolution: str,
        bitrates: Optional[Mapping[str, int]] = None,
    ) -> TranscodeOutput:
        """Transcode a source to the target resolution.

        Args:
            source_path: Path to the source video
            output_path: Path of the rendition to write (overwritten)
            resolution: Resolution label such as "720p"
            bitrates: Label to bitrate overrides for the standard table

        Returns:
            TranscodeOutput with result
        """
        profile = resolve_profile(resolution, bitrates)
        cmd = self.build_transcode_command(source_path, output_path, profile)

        def failed(message: str) -> TranscodeOutput:
            return TranscodeOutput(
                success=False,
                output_path=output_path,
                resolution=profile.label,
                height=profile.height,
                bitrate=profile.bitrate,
                error_message=message,
            )

        try:
            result = self._run(cmd, self.config.transcode_timeout)
        except subprocess.TimeoutExpired:
            return failed(f"Transcode timed out after {self.config.transcode_timeout}s")
        except OSError as e:
            return failed(f"ffmpeg could not be started: {e}")

        if result.returncode != 0:
            return failed(_tail(result.stderr) or f"ffmpeg exited with code {result.returncode}")

        if not os.path.exists(output_path):
            return failed("ffmpeg reported success but wrote no output")

        return TranscodeOutput(
            success=True,
            output_path=output_path,
            resolution=profile.label,
            height=profile.height,
            bitrate=profile.bitrate,
            file_size=os.path.getsize(output_path),
        )


def get_default_transcoder() -> FFmpegTranscoder:
    """Build the transcoder from application settings."""
    from coursemedia.core.config import settings

    return FFmpegTranscoder(
        TranscoderConfig(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            probe_timeout=settings.FFPROBE_TIMEOUT_SECONDS,
            thumbnail_timeout=settings.FFMPEG_THUMBNAIL_TIMEOUT_SECONDS,
            transcode_timeout=settings.FFMPEG_TRANSCODE_TIMEOUT_SECONDS,
            version_timeout=settings.FFMPEG_VERSION_TIMEOUT_SECONDS,
            thumbnail_width=settings.THUMBNAIL_WIDTH,
        )
    )
