"""
Shared pytest configuration for padpok tests.

Service tests run against an in-memory SQLite database (aiosqlite), created
fresh for every test. Pure engine tests need no fixtures at all.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
import pytz
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from padpok.database.db import Base
from padpok.services import user_service
from padpok.services.notification_service import NotificationDispatcher

# Monday 2 March 2026, 12:00 UTC (13:00 in Madrid)
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=pytz.UTC)


class FakeClock:
    """Injectable clock that only moves when a test says so."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher that remembers every notice it sends (and still stores it)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.sent: List[Dict] = []

    async def notify(self, kind, match_id, match_title, recipient_id, payload=None):
        self.sent.append({
            "kind": kind,
            "match_id": match_id,
            "match_title": match_title,
            "recipient_id": recipient_id,
            "payload": payload,
        })
        return await super().notify(kind, match_id, match_title, recipient_id, payload)

    def of_kind(self, kind: str) -> List[Dict]:
        return [notice for notice in self.sent if notice["kind"] == kind]


class FailingDispatcher(NotificationDispatcher):
    """Dispatcher whose delivery always blows up."""

    async def notify(self, kind, match_id, match_title, recipient_id, payload=None):
        raise RuntimeError("push gateway unavailable")


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory database with every table."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher(db_session):
    return RecordingDispatcher(db_session)


@pytest_asyncio.fixture
async def users(db_session) -> List[int]:
    """Five players: ana, bea, carla, dani, eva."""
    ids = []
    for name in ("ana", "bea", "carla", "dani", "eva"):
        ids.append(await user_service.create_user(db_session, name, f"{name}@example.com"))
    return ids


def schedule(days: float = 0, hours: float = 0, base: Optional[datetime] = None) -> datetime:
    """A start time relative to NOW."""
    return (base or NOW) + timedelta(days=days, hours=hours)
