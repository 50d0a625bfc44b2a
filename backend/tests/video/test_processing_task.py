"""Tests for the Celery processing task, its Redis lock and job enqueueing."""

import os
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import LockError

from coursemedia.core.config import settings
from coursemedia.modules.video.models import VideoStatus
from coursemedia.modules.video.processing import ProcessingConfig
from coursemedia.modules.video.repository import VideoRepository
from coursemedia.modules.video.tasks import (
    enqueue_video_processing,
    process_video_task,
    process_with_lock,
    purge_failed_sources_task,
    run_processing_job,
    run_source_purge,
)
from fakes import FakeTranscoder, create_staged_video

TASKS = "coursemedia.modules.video.tasks"


def redis_with_lock(acquired: bool) -> tuple[MagicMock, MagicMock]:
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=acquired)
    lock.release = AsyncMock()
    client = MagicMock()
    client.lock.return_value = lock
    return client, lock


class TestProcessWithLock:
    async def test_skips_when_lock_is_held(self) -> None:
        video_id = uuid.uuid4()
        client, lock = redis_with_lock(acquired=False)

        with patch(f"{TASKS}.run_processing_job", new_callable=AsyncMock) as run:
            result = await process_with_lock(video_id, None, redis_client=client)

        assert result == {"video_id": str(video_id), "status": "skipped"}
        run.assert_not_called()
        lock.release.assert_not_called()
        assert client.lock.call_args[0][0] == f"video-processing:{video_id}"
        assert client.lock.call_args.kwargs["blocking"] is False
        assert client.lock.call_args.kwargs["timeout"] == settings.processing_lock_ttl(
            len(settings.VIDEO_DEFAULT_RESOLUTIONS)
        )

    async def test_runs_job_and_releases_lock(self) -> None:
        video_id = uuid.uuid4()
        client, lock = redis_with_lock(acquired=True)

        with patch(f"{TASKS}.run_processing_job", new_callable=AsyncMock, return_value={"status": "ready"}) as run:
            result = await process_with_lock(video_id, ["720p"], redis_client=client)

        assert result == {"status": "ready"}
        run.assert_awaited_once_with(video_id, ["720p"])
        assert client.lock.call_args.kwargs["timeout"] > settings.processing_time_limit(1)
        lock.release.assert_awaited_once()

    async def test_lock_released_when_job_raises(self) -> None:
        client, lock = redis_with_lock(acquired=True)

        with patch(f"{TASKS}.run_processing_job", new_callable=AsyncMock, side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                await process_with_lock(uuid.uuid4(), None, redis_client=client)

        lock.release.assert_awaited_once()

    async def test_expired_lock_does_not_hide_result(self) -> None:
        client, lock = redis_with_lock(acquired=True)
        lock.release.side_effect = LockError("Cannot release an unlocked lock")

        with patch(f"{TASKS}.run_processing_job", new_callable=AsyncMock, return_value={"status": "failed"}):
            result = await process_with_lock(uuid.uuid4(), None, redis_client=client)

        assert result == {"status": "failed"}


class TestRunProcessingJob:
    async def test_runs_orchestrator_in_fresh_session(self, session, session_maker, storage, temp_dir) -> None:
        video = await create_staged_video(session, temp_dir)

        result = await run_processing_job(
            video.id,
            ["360p"],
            session_maker=session_maker,
            transcoder=FakeTranscoder(),
            storage=storage,
            config=ProcessingConfig(temp_dir=temp_dir),
        )

        assert result["video_id"] == str(video.id)
        assert result["status"] == "ready"
        assert result["renditions"] == {"360p": "ready"}

    async def test_unknown_video(self, session_maker, storage, temp_dir) -> None:
        video_id = uuid.uuid4()

        result = await run_processing_job(
            video_id,
            session_maker=session_maker,
            transcoder=FakeTranscoder(),
            storage=storage,
            config=ProcessingConfig(temp_dir=temp_dir),
        )

        assert result == {"video_id": str(video_id), "status": "not_found"}


class TestProcessVideoTask:
    def test_invalid_video_id_is_dropped(self) -> None:
        with patch(f"{TASKS}.process_with_lock", new_callable=AsyncMock) as run:
            result = process_video_task("not-a-uuid")

        assert result["status"] == "invalid"
        run.assert_not_called()

    def test_invalid_options_are_dropped(self) -> None:
        with patch(f"{TASKS}.process_with_lock", new_callable=AsyncMock) as run:
            result = process_video_task(str(uuid.uuid4()), {"resolutions": ["hd"]})

        assert result["status"] == "invalid"
        assert "hd" in result["error"]
        run.assert_not_called()

    def test_valid_message_runs_locked_job(self) -> None:
        video_id = uuid.uuid4()

        with patch(f"{TASKS}.process_with_lock", new_callable=AsyncMock, return_value={"status": "ready"}) as run:
            result = process_video_task(str(video_id), {"resolutions": ["720P", "360p", "720p"]})

        assert result == {"status": "ready"}
        run.assert_awaited_once_with(video_id, ["720p", "360p"])

    def test_missing_options_use_defaults(self) -> None:
        video_id = uuid.uuid4()

        with patch(f"{TASKS}.process_with_lock", new_callable=AsyncMock, return_value={"status": "ready"}) as run:
            process_video_task(str(video_id))

        run.assert_awaited_once_with(video_id, None)


class TestEnqueue:
    def test_enqueue_with_resolutions(self) -> None:
        video_id = uuid.uuid4()

        with patch(f"{TASKS}.process_video_task") as task:
            enqueue_video_processing(video_id, ["360p", "1080p"])

        task.apply_async.assert_called_once_with(
            args=[str(video_id), {"resolutions": ["360p", "1080p"]}],
            time_limit=settings.processing_time_limit(2),
        )

    def test_enqueue_with_defaults(self) -> None:
        video_id = uuid.uuid4()

        with patch(f"{TASKS}.process_video_task") as task:
            enqueue_video_processing(video_id)

        task.apply_async.assert_called_once_with(
            args=[str(video_id), None],
            time_limit=settings.processing_time_limit(len(settings.VIDEO_DEFAULT_RESOLUTIONS)),
        )

    def test_time_limit_covers_every_requested_transcode(self) -> None:
        labels = ["240p", "360p", "480p", "720p", "1080p", "1440p"]

        with patch(f"{TASKS}.process_video_task") as task:
            enqueue_video_processing(uuid.uuid4(), labels)

        time_limit = task.apply_async.call_args.kwargs["time_limit"]
        assert time_limit > len(labels) * settings.FFMPEG_TRANSCODE_TIMEOUT_SECONDS


class TestSourcePurge:
    async def test_purges_only_expired_failed_sources(self, session, session_maker, storage, temp_dir) -> None:
        stale = await create_staged_video(session, temp_dir)
        recent = await create_staged_video(session, temp_dir)
        videos = VideoRepository(session)
        for video in (stale, recent):
            await videos.start_processing(video)
            await videos.set_status(video, VideoStatus.FAILED)
        await videos.update(stale, updated_at=datetime.now(timezone.utc) - timedelta(hours=100))
        await session.commit()
        stale_source, recent_source = stale.source_path, recent.source_path

        result = await run_source_purge(session_maker, storage=storage, temp_dir=temp_dir, retention_hours=72)

        assert result == {"purged": 1, "retention_hours": 72}
        assert not os.path.exists(stale_source)
        assert os.path.exists(recent_source)
        async with session_maker() as fresh:
            assert (await VideoRepository(fresh).get_by_id(stale.id)).source_path is None
            assert (await VideoRepository(fresh).get_by_id(recent.id)).source_path == recent_source

    def test_periodic_task_runs_sweep(self) -> None:
        with patch(f"{TASKS}.run_source_purge", new_callable=AsyncMock, return_value={"purged": 0}) as run:
            result = purge_failed_sources_task()

        assert result == {"purged": 0}
        run.assert_awaited_once_with()
