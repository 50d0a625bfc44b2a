"""S3-compatible object storage gateway.

Stores rendition and thumbnail artifacts in two logical buckets. Works
against MinIO (path-style endpoint) as well as AWS S3.
"""

import logging
import mimetypes
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from coursemedia.core.metrics import record_storage_operation

logger = logging.getLogger(__name__)

# Error codes S3/MinIO return for a missing bucket on HeadBucket
_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


class BucketKind(str, Enum):
    """Logical partition of the object store."""

    VIDEO = "video"
    THUMBNAIL = "thumbnail"


class UrlMode(str, Enum):
    """How object URLs are issued."""

    DIRECT = "direct"
    PRESIGNED = "presigned"


@dataclass
class StorageConfig:
    """Configuration for S3-compatible storage."""

    video_bucket: str
    thumbnail_bucket: str
    endpoint_url: Optional[str] = None
    public_url: Optional[str] = None
    region: str = "us-east-1"
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = True
    url_mode: UrlMode = UrlMode.DIRECT
    presigned_expiry: int = 3600
    timeout_seconds: int = 60


@dataclass
class StorageResult:
    """Result of a successful upload."""

    bucket: str
    key: str
    file_size: int
    etag: Optional[str] = None


@dataclass
class ObjectMetadata:
    """Object metadata; zero values when the lookup failed."""

    size: int = 0
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None


class StorageError(Exception):
    """Raised when an object store call fails."""

    def __init__(self, message: str, operation: str, bucket: str, key: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.bucket = bucket
        self.key = key


class ObjectStorageGateway:
    """Gateway over the video and thumbnail buckets."""

    def __init__(
        self,
        config: StorageConfig,
        client=None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the gateway.

        Args:
            config: Storage configuration
            client: Pre-built S3 client (created lazily from config if omitted)
            logger: Logger for diagnostics
        """
        self.config = config
        self._client = client
        self.logger = logger or logging.getLogger(__name__)

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "config": BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                    connect_timeout=self.config.timeout_seconds,
                    read_timeout=self.config.timeout_seconds,
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def bucket_for(self, kind: BucketKind) -> str:
        """Resolve the physical bucket for a bucket kind."""
        if BucketKind(kind) == BucketKind.THUMBNAIL:
            return self.config.thumbnail_bucket
        return self.config.video_bucket

    def ensure_buckets(self) -> dict[str, bool]:
        """Create any missing bucket.

        Errors are logged and never raised: storage may become reachable
        later, and callers must not fail because of it.

        Returns:
            Mapping of bucket name to whether it is known to exist
        """
        ready = {}
        for kind in BucketKind:
            bucket = self.bucket_for(kind)
            ready[bucket] = self._ensure_bucket(bucket, kind)
        return ready

    def _ensure_bucket(self, bucket: str, kind: BucketKind) -> bool:
        try:
            client = self._get_client()
            client.head_bucket(Bucket=bucket)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in _MISSING_BUCKET_CODES:
                self.logger.error("Bucket check failed for %s: %s", bucket, e)
                return False
        except Exception as e:
            self.logger.error("Bucket check failed for %s: %s", bucket, e)
            return False

        try:
            create_kwargs = {"Bucket": bucket}
            if not self.config.endpoint_url and self.config.region not in ("", "us-east-1"):
                create_kwargs["CreateBucketConfiguration"] = {
                    "LocationConstraint": self.config.region,
                }
            client.create_bucket(**create_kwargs)
            self.logger.info("Created bucket %s", bucket)
            record_storage_operation("create_bucket", kind.value, True)
            return True
        except (BotoCoreError, ClientError) as e:
            self.logger.error("Failed to create bucket %s: %s", bucket, e)
            record_storage_operation("create_bucket", kind.value, False)
            return False

    def upload(
        self,
        local_path: str,
        key: str,
        kind: BucketKind = BucketKind.VIDEO,
        content_type: Optional[str] = None,
    ) -> StorageResult:
        """Upload a local file, replacing any object under the same key.

        Args:
            local_path: Local file path
            key: Object key
            kind: Target bucket kind
            content_type: MIME type (guessed from the key if omitted)

        Returns:
            Upload result

        Raises:
            StorageError: On transport, permission or local read failure
        """
        bucket = self.bucket_for(kind)
        content_type = content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"

        try:
            client = self._get_client()
            file_size = os.path.getsize(local_path)

            with open(local_path, "rb") as f:
                response = client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError, OSError) as e:
            record_storage_operation("upload", BucketKind(kind).value, False)
            raise StorageError(
                f"Failed to upload {key} to {bucket}: {e}",
                operation="upload",
                bucket=bucket,
                key=key,
            ) from e

        record_storage_operation("upload", BucketKind(kind).value, True)
        self.logger.info("Uploaded %s to %s (%d bytes)", key, bucket, file_size)

        return StorageResult(
            bucket=bucket,
            key=key,
            file_size=file_size,
            etag=response.get("ETag", "").strip('"') or None,
        )

    def delete(self, key: str, kind: BucketKind = BucketKind.VIDEO) -> None:
        """Delete an object.

        Raises:
            StorageError: If the backend call fails
        """
        bucket = self.bucket_for(kind)
        try:
            client = self._get_client()
            client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            record_storage_operation("delete", BucketKind(kind).value, False)
            raise StorageError(
                f"Failed to delete {key} from {bucket}: {e}",
                operation="delete",
                bucket=bucket,
                key=key,
            ) from e

        record_storage_operation("delete", BucketKind(kind).value, True)
        self.logger.info("Deleted %s from %s", key, bucket)

    def exists(self, key: str, kind: BucketKind = BucketKind.VIDEO) -> bool:
        """Check if an object exists. Any backend error reads as absent."""
        bucket = self.bucket_for(kind)
        try:
            client = self._get_client()
            client.head_object(Bucket=bucket, Key=key)
            return True
        except Exception as e:
            self.logger.debug("Existence check for %s in %s failed: %s", key, bucket, e)
            return False

    def url(self, key: str, kind: BucketKind = BucketKind.VIDEO) -> str:
        """Get a URL for an object.

        Direct mode returns a public path-style URL; presigned mode returns a
        time-limited signed GET URL.
        """
        bucket = self.bucket_for(kind)

        if self.config.url_mode == UrlMode.PRESIGNED:
            client = self._get_client()
            return client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=self.config.presigned_expiry,
            )

        base_url = self.config.public_url or self.config.endpoint_url
        if base_url:
            return f"{base_url.rstrip('/')}/{bucket}/{key}"
        return f"https://s3.{self.config.region}.amazonaws.com/{bucket}/{key}"

    def metadata(self, key: str, kind: BucketKind = BucketKind.VIDEO) -> ObjectMetadata:
        """Get object metadata; an empty result on failure."""
        bucket = self.bucket_for(kind)
        try:
            client = self._get_client()
            response = client.head_object(Bucket=bucket, Key=key)
        except Exception as e:
            self.logger.error("Failed to get metadata for %s in %s: %s", key, bucket, e)
            return ObjectMetadata()

        return ObjectMetadata(
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            content_type=response.get("ContentType", "application/octet-stream"),
        )

    def list_objects(self, prefix: str = "", kind: BucketKind = BucketKind.VIDEO) -> list[str]:
        """List object keys with a given prefix; empty on failure."""
        bucket = self.bucket_for(kind)
        try:
            client = self._get_client()
            response = client.list_objects_v2(Bucket=bucket, Prefix=prefix)
        except Exception as e:
            self.logger.error("Failed to list %s in %s: %s", prefix, bucket, e)
            return []

        return [obj["Key"] for obj in response.get("Contents", [])]


def rendition_key(video_id, resolution: str) -> str:
    """Object key of a rendition: videos/{videoId}/{resolution}.mp4."""
    return f"videos/{video_id}/{resolution}.mp4"


def thumbnail_key(video_id) -> str:
    """Object key of a thumbnail: thumbnails/{videoId}.jpg."""
    return f"thumbnails/{video_id}.jpg"


def get_default_storage() -> ObjectStorageGateway:
    """Build the storage gateway from application settings."""
    from coursemedia.core.config import settings

    config = StorageConfig(
        video_bucket=settings.STORAGE_VIDEO_BUCKET,
        thumbnail_bucket=settings.STORAGE_THUMBNAIL_BUCKET,
        endpoint_url=settings.STORAGE_ENDPOINT_URL,
        public_url=settings.STORAGE_PUBLIC_URL,
        region=settings.STORAGE_REGION,
        access_key=settings.STORAGE_ACCESS_KEY,
        secret_key=settings.STORAGE_SECRET_KEY,
        use_ssl=settings.STORAGE_USE_SSL,
        url_mode=UrlMode(settings.STORAGE_URL_MODE.lower()),
        presigned_expiry=settings.STORAGE_PRESIGNED_EXPIRY_SECONDS,
        timeout_seconds=settings.STORAGE_TIMEOUT_SECONDS,
    )
    return ObjectStorageGateway(config)
