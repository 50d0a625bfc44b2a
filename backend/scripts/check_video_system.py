"""Check the video pipeline's external dependencies.

Usage:
    cd backend
    python -m scripts.check_video_system
"""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from coursemedia.core.config import settings
from coursemedia.core.logging import setup_logging
from coursemedia.core.storage import get_default_storage
from coursemedia.modules.transcoding.ffmpeg import get_default_transcoder
from coursemedia.modules.video.diagnostics import check_video_system


def main() -> int:
    setup_logging(level=settings.LOG_LEVEL, json_format=False)

    print(f"\n{'='*60}")
    print("Video System Check")
    print(f"{'='*60}")
    print(f"  FFMPEG_PATH: {settings.FFMPEG_PATH}")
    print(f"  FFPROBE_PATH: {settings.FFPROBE_PATH}")
    print(f"  STORAGE_ENDPOINT_URL: {settings.STORAGE_ENDPOINT_URL}")
    print(f"  VIDEO_TEMP_DIR: {settings.VIDEO_TEMP_DIR}")
    print(f"  VIDEO_MAX_UPLOAD_SIZE: {settings.VIDEO_MAX_UPLOAD_SIZE}")

    report = check_video_system(
        get_default_transcoder(),
        get_default_storage(),
        settings.VIDEO_TEMP_DIR,
    )

    print()
    print(json.dumps(report, indent=2))
    return 0 if report["status"] == "ok" else 1


if __name__ == "__main__":
    sys.exit(main())
