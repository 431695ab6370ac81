from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from designdesk.config import Settings
from designdesk.infrastructure.database import Database
from designdesk.main import create_app
from designdesk.sla.infrastructure import StaticSLAConfigProvider
from designdesk.tests.helpers import (
    BILLING_SECRET,
    TRACKER_SECRET,
    FakeNotifier,
    MutableClock,
    ny,
)


@pytest.fixture
def clock() -> MutableClock:
    # Monday 2024-01-15 10:00 New York, inside business hours.
    return MutableClock(ny(2024, 1, 15, 10))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'designdesk.db'}",
        sla_config_path=tmp_path / "missing-sla-config.yaml",
        webhook_secrets={"billing": BILLING_SECRET, "tracker": TRACKER_SECRET},
    )


@pytest.fixture
async def database(settings):
    # File-backed SQLite so every session sees the same schema and rows.
    db = Database(settings.database_url)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
async def session(database):
    async with database.session_maker() as session:
        yield session


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def app(settings, database, clock, notifier):
    return create_app(
        settings=settings,
        database=database,
        clock=clock,
        notifier=notifier,
        sla_config_provider=StaticSLAConfigProvider(),
    )


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
