"""Property-based tests for the video lifecycle state machine."""

import pytest
from hypothesis import given, settings, strategies as st

from coursemedia.modules.video.exceptions import InvalidStatusTransitionError
from coursemedia.modules.video.models import VIDEO_STATUS_TRANSITIONS, VideoStatus, can_transition
from coursemedia.modules.video.repository import RenditionRepository, VideoRepository
from fakes import create_staged_video


status_strategy = st.sampled_from(list(VideoStatus))


class TestTransitionTable:
    """Property tests for allowed status transitions."""

    @given(current=status_strategy, target=status_strategy)
    @settings(max_examples=100)
    def test_draft_is_never_reentered(self, current: VideoStatus, target: VideoStatus) -> None:
        """No status SHALL lead back to DRAFT."""
        if target == VideoStatus.DRAFT:
            assert can_transition(current, target) is False

    @given(current=status_strategy)
    @settings(max_examples=50)
    def test_every_status_can_start_an_attempt(self, current: VideoStatus) -> None:
        """Any video SHALL be able to enter PROCESSING for a new attempt."""
        assert can_transition(current, VideoStatus.PROCESSING) is True

    @given(target=status_strategy)
    @settings(max_examples=50)
    def test_outcomes_only_from_processing(self, target: VideoStatus) -> None:
        """READY and FAILED SHALL only be reached from PROCESSING."""
        for current in VideoStatus:
            if target in (VideoStatus.READY, VideoStatus.FAILED) and current != VideoStatus.PROCESSING:
                assert can_transition(current, target) is False

    def test_table_covers_every_status(self) -> None:
        assert set(VIDEO_STATUS_TRANSITIONS) == set(VideoStatus)

    def test_accepts_raw_string_values(self) -> None:
        assert can_transition("draft", "processing") is True
        assert can_transition("draft", "ready") is False


class TestRepositoryTransitions:
    async def test_draft_to_ready_is_rejected(self, session, temp_dir) -> None:
        video = await create_staged_video(session, temp_dir)
        repo = VideoRepository(session)

        with pytest.raises(InvalidStatusTransitionError):
            await repo.set_status(video, VideoStatus.READY)

        assert video.status == VideoStatus.DRAFT.value

    async def test_start_processing_counts_attempts(self, session, temp_dir) -> None:
        video = await create_staged_video(session, temp_dir)
        repo = VideoRepository(session)

        await repo.start_processing(video)
        await repo.set_status(video, VideoStatus.FAILED)
        await repo.start_processing(video)

        assert video.status == VideoStatus.PROCESSING.value
        assert video.processing_attempts == 2


class TestRenditionAttempts:
    async def test_rerun_resets_existing_row(self, session, temp_dir) -> None:
        video = await create_staged_video(session, temp_dir)
        repo = RenditionRepository(session)

        first = await repo.start_attempt(video.id, "720p", 2_500_000)
        await repo.mark_ready(first, "videos/x/720p.mp4", 1024)
        second = await repo.start_attempt(video.id, "720p", 3_000_000)
        await session.commit()

        rows = await repo.list_for_video(video.id)
        assert len(rows) == 1
        assert second.id == first.id
        assert rows[0].status == "pending"
        assert rows[0].bitrate == 3_000_000
        assert rows[0].object_key is None
