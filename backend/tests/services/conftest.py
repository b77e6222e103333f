"""Service test fixtures - async DB, seeded tenants, fake chat transport, API client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched for code paths that open their own sessions (materializer)
    - app.state.telegram is a FakeTelegram; wizard store and scheduler are fresh per test

Design Decisions:
    - SQLite in-memory: fast, no external dependency; FOR UPDATE is a no-op there, so
      concurrency tests exercise the in-process per-instance lock
    - Factories (make_series, make_instance) over fixed rows: tests state what they need
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import rollcall.infrastructure.database as db_module
from rollcall.core.wizard_session import WizardSessionStore
from rollcall.db.base import Base
from rollcall.infrastructure.database import DatabaseSessionManager, get_db
from rollcall.main import app
from rollcall.models.event_instance import EventInstance
from rollcall.models.event_series import EventSeries
from rollcall.models.tenant import Tenant, TenantMember
from tests.services.actors import ADMIN, GROUP_CHAT, OTHER_ADMIN
from tests.services.fake_telegram import FakeTelegram


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
async def tenant(test_db):
    """Tenant administered by ADMIN."""
    tenant = Tenant(name="Volleyball Club")
    test_db.add(tenant)
    await test_db.flush()
    test_db.add(TenantMember(tenant_id=tenant.id, actor_id=ADMIN))
    await test_db.commit()
    return tenant


@pytest.fixture
async def other_tenant(test_db):
    """Unrelated tenant administered by OTHER_ADMIN."""
    tenant = Tenant(name="Chess Club")
    test_db.add(tenant)
    await test_db.flush()
    test_db.add(TenantMember(tenant_id=tenant.id, actor_id=OTHER_ADMIN))
    await test_db.commit()
    return tenant


@pytest.fixture
def make_series(test_db, tenant):
    async def _make(**overrides) -> EventSeries:
        values = {
            "tenant_id": tenant.id,
            "title": "Monday Volleyball",
            "recurrence": (
                "DTSTART;TZID=Europe/Helsinki:20261019T180000\n"
                "RRULE:FREQ=WEEKLY;BYDAY=MO"
            ),
            "timezone": "Europe/Helsinki",
            "chat_id": GROUP_CHAT,
            "capacity_limit": 12,
            "duration_minutes": 120,
        }
        values.update(overrides)
        series = EventSeries(**values)
        test_db.add(series)
        await test_db.commit()
        return series
    return _make


@pytest.fixture
def make_instance(test_db):
    async def _make(series: EventSeries, start: datetime | None = None) -> EventInstance:
        start = start or datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=3)
        instance = EventInstance(
            series_id=series.id,
            start_time=start,
            end_time=start + timedelta(minutes=series.duration_minutes),
        )
        test_db.add(instance)
        await test_db.commit()
        return instance
    return _make


@pytest.fixture
async def client(test_engine, test_session_factory, telegram):
    """FastAPI test client with DB dependency overridden and fake chat transport."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    app.state.telegram = telegram
    app.state.wizard_store = WizardSessionStore()
    app.state.scheduler = None

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    app.state.telegram = None
    app.state.wizard_store = None
    app.state.scheduler = None
