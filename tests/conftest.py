"""Shared pytest fixtures for the render pipeline tests.

Database fixtures use an in-memory SQLite database (aiosqlite) with the same
session configuration as production (expire_on_commit=False).
"""

import pytest
import pytest_asyncio

from render_pipeline.database import create_test_engine
from render_pipeline.models import Asset, AssetType, Base
from render_pipeline.services.job_store import JobStore
from render_pipeline.services.transcoder import TranscodeOptions

from tests.fixtures.fakes import FakeTranscoder, InMemoryObjectStore
from tests.fixtures.sample_data import ASSET_BYTES, ASSET_KEY, PROJECT_ID


@pytest_asyncio.fixture
async def session_factory():
    """Create an async session factory on a fresh in-memory database.

    Creates all tables before yielding, disposes the engine after.
    """
    engine, factory = create_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest_asyncio.fixture
async def asset(session_factory) -> Asset:
    """An uploaded video asset owned by PROJECT_ID."""
    async with session_factory() as session, session.begin():
        asset = Asset(
            project_id=PROJECT_ID,
            filename="clip.mp4",
            mime="video/mp4",
            size=len(ASSET_BYTES),
            type=AssetType.VIDEO,
            s3_path=ASSET_KEY,
        )
        session.add(asset)
    return asset


@pytest.fixture
def temp_dir(tmp_path):
    """Empty scratch directory for one test."""
    directory = tmp_path / "render-temp"
    directory.mkdir()
    return directory


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore({ASSET_KEY: ASSET_BYTES})


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def transcode_options() -> TranscodeOptions:
    return TranscodeOptions(timeout=60)
