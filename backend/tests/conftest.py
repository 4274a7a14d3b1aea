"""
Pytest fixtures for test database, services, and the HTTP client.

Each test gets its own SQLite database file. The engine is built by the same
build_engine() as production, so every transaction opens with BEGIN IMMEDIATE
and concurrent asyncio.gather() calls really serialize on the write lock.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")

from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from ticketing.main import app
from ticketing.api.deps import get_session_factory
from ticketing.db.base import Base, utcnow
from ticketing.db.session import build_engine, build_session_factory, get_db
from ticketing.models.event import Event
from ticketing.services.admission_service import QueueAdmissionController
from ticketing.services.inventory_ledger import InventoryLedger
from ticketing.services.policy_service import (
    AdmissionPolicy,
    AdmissionPolicyStore,
    get_policy_store,
)


class FakeClock:
    """Callable clock the services accept in place of utcnow."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ticketing_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy_store() -> AdmissionPolicyStore:
    """Queue enforced, two active slots, no redis layer."""
    return AdmissionPolicyStore(AdmissionPolicy(enabled=True, max_active_users=2))


@pytest.fixture
def ledger(session_factory, clock) -> InventoryLedger:
    return InventoryLedger(session_factory, clock=clock)


@pytest.fixture
def controller(session_factory, policy_store, clock) -> QueueAdmissionController:
    return QueueAdmissionController(session_factory, policy_store, clock=clock)


@pytest.fixture
def make_event(session_factory):
    """Insert an event directly, bypassing the create endpoint's checks."""

    async def _make_event(
        total_tickets: int = 100,
        available_tickets: int = None,
        starts_in: timedelta = timedelta(days=30),
        price: Decimal = Decimal("50.00"),
    ) -> Event:
        start = utcnow() + starts_in
        event = Event(
            title="Test Concert",
            description="A test event",
            location="Test Venue",
            price=price,
            start_date=start,
            end_date=start + timedelta(hours=3),
            total_tickets=total_tickets,
            available_tickets=total_tickets if available_tickets is None else available_tickets,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(event)
        return event

    return _make_event


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """An upcoming event with 100 tickets at 50.00."""
    return await make_event()


@pytest_asyncio.fixture
async def sold_out_event(make_event) -> Event:
    """An upcoming event with no tickets left."""
    return await make_event(total_tickets=50, available_tickets=0)


@pytest.fixture
def fetch_event(session_factory):
    """Read an event's committed state."""

    async def _fetch(event_id: int) -> Event:
        async with session_factory() as session:
            return await session.get(Event, event_id)

    return _fetch


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, policy_store) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the per-test database and policy store."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_policy_store] = lambda: policy_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
