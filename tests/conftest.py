"""Pytest configuration and fixtures for test suite."""

import os

# Set test environment BEFORE any application imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from followup_gate.db.database import init_db
from followup_gate.followups.senders import DeliveryError


T0 = datetime(2026, 1, 9, 0, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock. Only moves when a test moves it."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSender:
    def __init__(self):
        self.sent = []

    async def send(self, lead, subject, body, channel):
        self.sent.append({"lead_id": lead.id, "subject": subject, "body": body, "channel": channel})


class FailingSender:
    def __init__(self, message="smtp connection refused"):
        self.message = message
        self.attempts = 0

    async def send(self, lead, subject, body, channel):
        self.attempts += 1
        raise DeliveryError(self.message)


@pytest.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def failing_sender():
    return FailingSender()
