"""Video system diagnostics.

Checks the external pieces the pipeline depends on: the ffmpeg binary, the
object store and the local scratch directory.
"""

import logging
import os
import tempfile
import uuid
from typing import Optional

from coursemedia.core.storage import BucketKind, ObjectStorageGateway, StorageError
from coursemedia.modules.transcoding.ffmpeg import MediaTranscoder

logger = logging.getLogger(__name__)

DIAGNOSTIC_KEY_PREFIX = "diagnostics/"


def check_storage_roundtrip(storage: ObjectStorageGateway) -> bool:
    """Upload, look up and delete a small object in the video bucket."""
    key = f"{DIAGNOSTIC_KEY_PREFIX}{uuid.uuid4()}.txt"
    fd, path = tempfile.mkstemp(suffix=".txt")
    try:
        with os.fdopen(fd, "w") as f:
            f.write("coursemedia storage check\n")
        storage.upload(path, key, BucketKind.VIDEO, content_type="text/plain")
        found = storage.exists(key, BucketKind.VIDEO)
        storage.delete(key, BucketKind.VIDEO)
        return found
    except StorageError as e:
        logger.warning("Storage round trip failed: %s", e)
        return False
    finally:
        if os.path.exists(path):
            os.remove(path)


def check_temp_dir(temp_dir: str) -> bool:
    """Check that the scratch directory exists (creating it) and is writable."""
    try:
        os.makedirs(temp_dir, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=temp_dir):
            pass
        return True
    except OSError as e:
        logger.warning("Temp directory %s is not writable: %s", temp_dir, e)
        return False


def check_video_system(
    transcoder: MediaTranscoder,
    storage: ObjectStorageGateway,
    temp_dir: str,
    logger: Optional[logging.Logger] = None,
) -> dict:
    """Report the health of every pipeline dependency.

    Returns:
        dict with an overall ``status`` of ``ok`` or ``degraded``
    """
    log = logger or logging.getLogger(__name__)

    ffmpeg_available = transcoder.is_available()
    buckets = storage.ensure_buckets()
    storage_reachable = all(buckets.values()) and check_storage_roundtrip(storage)
    temp_writable = check_temp_dir(temp_dir)

    report = {
        "status": "ok" if (ffmpeg_available and storage_reachable and temp_writable) else "degraded",
        "ffmpeg": {"available": ffmpeg_available},
        "storage": {
            "reachable": storage_reachable,
            "buckets": buckets,
            "url_mode": storage.config.url_mode.value,
        },
        "temp_dir": {"path": os.path.abspath(temp_dir), "writable": temp_writable},
    }

    log.info("Video system check: %s", report["status"])
    return report
