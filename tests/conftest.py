"""
Shared fixtures.

Each test gets its own SQLite database file and a scripted fake HTTP
transport, so no network or PostgreSQL is needed.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./eventcore-test.db")
os.environ["SENTRY_DSN"] = ""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from eventcore.models.base import Base
from eventcore.models.organization import Organization
from eventcore.models.automation_rule import AutomationRule  # noqa: F401
from eventcore.models.webhook import DeliveryAttempt, WebhookSubscription  # noqa: F401
from eventcore.models.targets import FeatureConfig, Notification, Task  # noqa: F401

from helpers import FrozenClock, RecordingSleep


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'eventcore.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def org(session_factory):
    """A tenant organization."""
    async with session_factory() as db:
        org = Organization(name="Acme Property", domain="acme.test")
        db.add(org)
        await db.commit()
        return org


@pytest_asyncio.fixture
async def other_org(session_factory):
    """A second tenant, for isolation checks."""
    async with session_factory() as db:
        org = Organization(name="Beta Estates", domain="beta.test")
        db.add(org)
        await db.commit()
        return org


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sleep():
    return RecordingSleep()
