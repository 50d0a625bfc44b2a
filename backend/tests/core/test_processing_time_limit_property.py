"""Property-based tests for the processing job time limit and lock TTL.

A job encodes its renditions one after another in the worst case, so the
hard time limit must cover every ffmpeg timeout it can hit, and the
per-video lock must never expire while the job may still be running.
"""

from hypothesis import given, settings, strategies as st

from coursemedia.core.config import Settings


timeout_strategy = st.integers(min_value=1, max_value=10_000)
count_strategy = st.integers(min_value=1, max_value=12)


def make_settings(transcode: int, probe: int, thumbnail: int, upload: int) -> Settings:
    return Settings(
        FFMPEG_TRANSCODE_TIMEOUT_SECONDS=transcode,
        FFPROBE_TIMEOUT_SECONDS=probe,
        FFMPEG_THUMBNAIL_TIMEOUT_SECONDS=thumbnail,
        VIDEO_UPLOAD_ALLOWANCE_SECONDS=upload,
    )


class TestProcessingTimeLimit:
    """Tests for the job time limit derived from step timeouts."""

    def test_default_ladder_outlasts_three_full_transcodes(self) -> None:
        config = Settings()
        count = len(config.VIDEO_DEFAULT_RESOLUTIONS)

        assert config.processing_time_limit(count) > count * config.FFMPEG_TRANSCODE_TIMEOUT_SECONDS

    def test_empty_ladder_still_budgets_one_rendition(self) -> None:
        config = Settings()

        assert config.processing_time_limit(0) == config.processing_time_limit(1)

    @given(
        transcode=timeout_strategy,
        probe=timeout_strategy,
        thumbnail=timeout_strategy,
        upload=timeout_strategy,
        count=count_strategy,
    )
    @settings(max_examples=100)
    def test_limit_covers_every_step_timeout(
        self, transcode: int, probe: int, thumbnail: int, upload: int, count: int
    ) -> None:
        """The limit SHALL cover probe, thumbnail and every sequential encode with its upload."""
        config = make_settings(transcode, probe, thumbnail, upload)

        worst_case = (
            config.FFMPEG_VERSION_TIMEOUT_SECONDS
            + probe
            + thumbnail
            + upload
            + count * (transcode + upload)
        )
        assert config.processing_time_limit(count) >= worst_case

    @given(transcode=timeout_strategy, count=count_strategy)
    @settings(max_examples=50)
    def test_limit_grows_with_rendition_count(self, transcode: int, count: int) -> None:
        """One more rendition SHALL add at least one more transcode timeout."""
        config = make_settings(transcode, 30, 60, 600)

        assert (
            config.processing_time_limit(count + 1) - config.processing_time_limit(count)
            >= transcode
        )

    @given(transcode=timeout_strategy, count=count_strategy)
    @settings(max_examples=50)
    def test_lock_outlives_time_limit(self, transcode: int, count: int) -> None:
        """The lock TTL SHALL exceed the hard time limit of the same job."""
        config = make_settings(transcode, 30, 60, 600)

        assert config.processing_lock_ttl(count) > config.processing_time_limit(count)
