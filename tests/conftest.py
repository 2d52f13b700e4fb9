"""
Pytest fixtures for WatchGate tests.
"""

import os
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select, update

# Ensure test config is set before importing watchgate modules.
os.environ.setdefault("WATCHGATE_ENV", "development")
os.environ.setdefault("WATCHGATE_SWEEP_ENABLED", "false")
os.environ.setdefault("WATCHGATE_SELECTION_POLICY", "least_loaded")
os.environ.setdefault("WATCHGATE_LEASE_TTL_SECONDS", "300")
os.environ.setdefault(
    "WATCHGATE_DATABASE_URL",
    os.getenv("WATCHGATE_TEST_DATABASE_URL", "sqlite+aiosqlite:///./watchgate_test.db"),
)

from watchgate.config import SelectionPolicy
from watchgate.db.base import Store
from watchgate.db.tables import LeaseTable, OrderTable, WatchmanTable
from watchgate.engine import WatchGateEngine
from watchgate.models import LeaseStatus, OrderStatus, WatchmanStatus
from watchgate.observability.metrics import metrics
from watchgate.utils.time import utc_now

pytest_plugins = ("pytest_asyncio",)

TTL_SECONDS = 300

DEFAULT_WATCHMEN = [
    (1, "Alice"),
    (2, "Bob"),
    (3, "Carol"),
]

DEFAULT_ORDERS = [
    ("ORD-1", "Dana", 120.0),
    ("ORD-2", "Eli", 80.5),
    ("ORD-3", "Fay", 42.0),
    ("ORD-4", "Gus", 10.0),
]


async def add_watchmen(store: Store, specs, status: WatchmanStatus = WatchmanStatus.ACTIVE):
    """Register watchmen in the directory as (id, name) pairs."""
    now = utc_now()
    async with store.session() as session:
        for watchman_id, name in specs:
            session.add(
                WatchmanTable(
                    watchman_id=watchman_id,
                    name=name,
                    name_lower=name.lower(),
                    contact=f"555-010{watchman_id}",
                    email=f"{name.lower()}@example.com",
                    status=status,
                    registered_at=now,
                )
            )


async def add_orders(store: Store, specs):
    """Put completed orders in the order store as (ref, customer, total) triples."""
    now = utc_now()
    async with store.session() as session:
        for order_ref, customer, total in specs:
            session.add(
                OrderTable(
                    order_ref=order_ref,
                    customer=customer,
                    items=[{"name": "item", "qty": 1}],
                    total=total,
                    status=OrderStatus.COMPLETED,
                    created_at=now,
                    completed_at=now,
                )
            )


async def backdate_assigned(session, order_ref: str, seconds: float) -> None:
    """Move the assigned lease of an order ``seconds`` into the past."""
    await session.execute(
        update(LeaseTable)
        .where(
            LeaseTable.order_ref == order_ref,
            LeaseTable.status == LeaseStatus.ASSIGNED,
        )
        .values(created_at=utc_now() - timedelta(seconds=seconds))
    )


async def leases_for(session, order_ref: str) -> list[LeaseTable]:
    """Lease rows for an order, oldest first, reloaded from the database."""
    result = await session.execute(
        select(LeaseTable)
        .where(LeaseTable.order_ref == order_ref)
        .order_by(LeaseTable.created_at.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.fixture(autouse=True)
def reset_metrics():
    """Every test starts with an empty metrics registry."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
async def store(tmp_path):
    """An open store on a throwaway SQLite file."""
    store = Store(f"sqlite+aiosqlite:///{tmp_path / 'watchgate.db'}", timeout_seconds=5.0)
    await store.open()
    yield store
    await store.close()


@pytest.fixture
async def watchmen(store):
    """Three active watchmen, ids 1..3."""
    await add_watchmen(store, DEFAULT_WATCHMEN)
    return DEFAULT_WATCHMEN


@pytest.fixture
async def orders(store):
    """A handful of completed orders with known totals."""
    await add_orders(store, DEFAULT_ORDERS)
    return DEFAULT_ORDERS


@pytest.fixture
async def session(store):
    """
    Provide a database session per test.

    Seed through the store fixtures before touching the session: on SQLite
    an open transaction holds the write lock.
    """
    async with store.session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def engine_factory(session):
    """Build engines on the test session with fixed lease settings."""

    def _make(
        selection_policy: SelectionPolicy = SelectionPolicy.LEAST_LOADED,
        require_known_order: bool = False,
        lease_ttl_seconds: int = TTL_SECONDS,
    ) -> WatchGateEngine:
        return WatchGateEngine(
            session,
            lease_ttl_seconds=lease_ttl_seconds,
            selection_policy=selection_policy,
            require_known_order=require_known_order,
        )

    return _make


@pytest.fixture
def engine(engine_factory) -> WatchGateEngine:
    """Least-loaded engine with a 300s TTL."""
    return engine_factory()


@pytest.fixture
async def client(store):
    """Async test client bound to the test store."""
    from watchgate.main import app

    app.state.store = store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.state.store = None
