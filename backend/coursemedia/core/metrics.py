"""Prometheus metrics for the video pipeline.

Tracks processing job outcomes, rendition outcomes, encode durations and
object storage calls. The scrape endpoint lives outside this package.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Celery prefork workers share metrics through the multiprocess directory
if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "coursemedia_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Processing Metrics
# ============================================
VIDEO_PROCESSING_JOBS_TOTAL = Counter(
    "video_processing_jobs_total",
    "Total video processing jobs by outcome",
    ["status"],
    registry=REGISTRY,
)

VIDEO_RENDITIONS_TOTAL = Counter(
    "video_renditions_total",
    "Total rendition attempts by resolution and outcome",
    ["resolution", "status"],
    registry=REGISTRY,
)

VIDEO_TRANSCODE_DURATION_SECONDS = Histogram(
    "video_transcode_duration_seconds",
    "Wall time of a single rendition encode",
    ["resolution"],
    buckets=[5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1200.0, 3600.0],
    registry=REGISTRY,
)

VIDEO_UPLOADS_TOTAL = Counter(
    "video_uploads_total",
    "Total upload intake attempts by outcome",
    ["status"],
    registry=REGISTRY,
)


# ============================================
# Object Storage Metrics
# ============================================
OBJECT_STORAGE_OPERATIONS_TOTAL = Counter(
    "object_storage_operations_total",
    "Total object storage operations",
    ["operation", "bucket_kind", "status"],
    registry=REGISTRY,
)


def record_processing_job(status: str) -> None:
    """Record the outcome of a processing job."""
    VIDEO_PROCESSING_JOBS_TOTAL.labels(status=status).inc()


def record_rendition(resolution: str, status: str) -> None:
    """Record the outcome of a rendition attempt."""
    VIDEO_RENDITIONS_TOTAL.labels(resolution=resolution, status=status).inc()


def observe_transcode_duration(resolution: str, seconds: float) -> None:
    """Record how long an encode took."""
    VIDEO_TRANSCODE_DURATION_SECONDS.labels(resolution=resolution).observe(seconds)


def record_upload(status: str) -> None:
    """Record the outcome of an upload intake attempt."""
    VIDEO_UPLOADS_TOTAL.labels(status=status).inc()


def record_storage_operation(operation: str, bucket_kind: str, success: bool) -> None:
    """Record an object storage call."""
    OBJECT_STORAGE_OPERATIONS_TOTAL.labels(
        operation=operation,
        bucket_kind=bucket_kind,
        status="success" if success else "error",
    ).inc()


def get_metrics() -> bytes:
    """Generate metrics output in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
