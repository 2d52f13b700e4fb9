"""
Store resilience tests.

Transient failures get exactly one reconnect-and-retry; anything else
passes straight through.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from watchgate.db.base import Store
from watchgate.engine import StoreUnavailable, WorkerNotFound
from watchgate.observability.metrics import metrics


def _connection_lost() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection lost"))


@pytest.mark.asyncio
async def test_run_returns_operation_result(store):
    async def _operation(session):
        return 42

    assert await store.run(_operation) == 42


@pytest.mark.asyncio
async def test_ping(store):
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_transient_failure_is_retried_once(store):
    calls = []
    first_engine = store.engine

    async def _flaky(session):
        calls.append(session)
        if len(calls) == 1:
            raise _connection_lost()
        return "ok"

    assert await store.run(_flaky) == "ok"
    assert len(calls) == 2
    assert store.engine is not first_engine
    assert metrics.counter_value("store.retries") == 1


@pytest.mark.asyncio
async def test_second_failure_raises_store_unavailable(store):
    calls = []

    async def _down(session):
        calls.append(session)
        raise _connection_lost()

    with pytest.raises(StoreUnavailable) as exc_info:
        await store.run(_down)

    assert len(calls) == 2
    assert "connection lost" in exc_info.value.reason
    assert exc_info.value.code == "STORE_UNAVAILABLE"
    assert metrics.counter_value("store.unavailable") == 1


@pytest.mark.asyncio
async def test_timeout_counts_as_transient(tmp_path):
    store = Store(f"sqlite+aiosqlite:///{tmp_path / 'slow.db'}", timeout_seconds=0.05)
    await store.open()
    calls = []

    async def _slow(session):
        calls.append(session)
        await asyncio.sleep(1)

    try:
        with pytest.raises(StoreUnavailable):
            await store.run(_slow)
    finally:
        await store.close()

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_domain_errors_are_not_retried(store):
    calls = []

    async def _rejects(session):
        calls.append(session)
        raise WorkerNotFound(9)

    with pytest.raises(WorkerNotFound):
        await store.run(_rejects)

    assert len(calls) == 1
    assert metrics.counter_value("store.retries") == 0


@pytest.mark.asyncio
async def test_store_reopen_is_idempotent_and_close_resets(tmp_path):
    store = Store(f"sqlite+aiosqlite:///{tmp_path / 'cycle.db'}")
    assert not store.is_open

    await store.open()
    engine = store.engine
    await store.open()
    assert store.engine is engine

    await store.close()
    assert not store.is_open
    with pytest.raises(RuntimeError):
        async with store.session():
            pass
