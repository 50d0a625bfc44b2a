"""Shared fixtures for the test suite."""

import pytest

from coursemedia.core.storage import ObjectStorageGateway
from fakes import (
    THUMBNAIL_BUCKET,
    VIDEO_BUCKET,
    InMemoryS3Client,
    create_session_maker,
    make_storage,
)


@pytest.fixture
async def session_maker(tmp_path):
    engine, maker = await create_session_maker(str(tmp_path / "test.db"))
    yield maker
    await engine.dispose()


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture
def temp_dir(tmp_path) -> str:
    path = tmp_path / "videos"
    path.mkdir()
    return str(path)


@pytest.fixture
def s3_client() -> InMemoryS3Client:
    return InMemoryS3Client([VIDEO_BUCKET, THUMBNAIL_BUCKET])


@pytest.fixture
def storage(s3_client) -> ObjectStorageGateway:
    return make_storage(s3_client)
