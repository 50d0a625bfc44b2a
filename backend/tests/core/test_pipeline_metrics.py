"""Tests for pipeline Prometheus metrics."""

from coursemedia.core.metrics import (
    REGISTRY,
    get_content_type,
    get_metrics,
    record_processing_job,
    record_rendition,
    record_storage_operation,
)


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestPipelineMetrics:
    def test_job_outcomes_are_counted(self) -> None:
        before = sample("video_processing_jobs_total", status="skipped")

        record_processing_job("skipped")

        assert sample("video_processing_jobs_total", status="skipped") == before + 1

    def test_rendition_outcomes_are_labelled(self) -> None:
        before = sample("video_renditions_total", resolution="480p", status="failed")

        record_rendition("480p", "failed")

        assert sample("video_renditions_total", resolution="480p", status="failed") == before + 1

    def test_storage_errors_are_counted_separately(self) -> None:
        before = sample("object_storage_operations_total", operation="upload", bucket_kind="thumbnail", status="error")

        record_storage_operation("upload", "thumbnail", success=False)

        assert sample(
            "object_storage_operations_total", operation="upload", bucket_kind="thumbnail", status="error"
        ) == before + 1

    def test_exposition(self) -> None:
        record_processing_job("ready")

        output = get_metrics().decode()

        assert "video_processing_jobs_total" in output
        assert get_content_type().startswith("text/plain")
