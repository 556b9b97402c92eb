import os

# Settings are read at import time, so the environment has to be ready first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("ENABLE_HOURLY_SYNC", "false")

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from app.core import database
# Explicit import to ensure metadata is populated
from app.db.models import Base


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeMidgardClient:
    """Replays canned (body, status) responses; exceptions in the script are raised."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def fetch_page(self, schema, interval=None, from_time=None, to_time=None, count=None):
        self.calls.append({
            "series": schema.id,
            "interval": interval,
            "from_time": from_time,
            "to_time": to_time,
            "count": count,
        })
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self):
        pass


# 1. Function-Scoped Engine on a throwaway SQLite file
@pytest.fixture(scope="function")
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    yield engine
    await engine.dispose()

# 2. Patch Startup Events
@pytest.fixture(scope="function", autouse=True)
async def mock_startup_handlers():
    # Keep the app from creating tables or spawning sync tasks on its own
    with patch("app.main.init_db", new_callable=AsyncMock) as mock_init, \
         patch("app.main.start_sync_jobs", new_callable=AsyncMock) as mock_sync:
        yield mock_init, mock_sync

# 3. Function-Scoped DB Setup
@pytest.fixture(scope="function", autouse=True)
async def setup_test_db(db_engine):
    # Snapshot global
    original_engine = database.db_manager._engine
    original_maker = database.db_manager._session_maker

    # Patch global
    database.db_manager._engine = db_engine
    database.db_manager._session_maker = sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    # Restore global
    database.db_manager._engine = original_engine
    database.db_manager._session_maker = original_maker


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def session_factory():
    return database.AsyncSessionLocal
