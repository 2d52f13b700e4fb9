"""
Expiry sweep tests.

Stale leases are expired once, their orders handed to someone other than
the previous holder, and counters stay consistent with lease state.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from conftest import TTL_SECONDS, add_watchmen, backdate_assigned, leases_for
from watchgate.config import SelectionPolicy
from watchgate.db.repositories import StatRepository
from watchgate.db.tables import LeaseTable
from watchgate.engine import LeaseExpired, LeaseNotFound, WatchGateEngine
from watchgate.models import LeaseStatus
from watchgate.observability.metrics import metrics
from watchgate.tasks.sweep import run_sweep, start_lease_sweep, stop_lease_sweep


@pytest.mark.asyncio
async def test_sweep_expires_and_reassigns_excluding_previous_holder(engine, session, store):
    """The previous holder is skipped even when it is the least loaded."""
    await add_watchmen(store, [(1, "Alice"), (2, "Bob")])
    first = await engine.assign("ORD-1")
    await engine.assign("ORD-2")
    assert first.watchman_id == 1
    await backdate_assigned(session, "ORD-1", TTL_SECONDS + 1)

    # Alice now carries no load inside the TTL window, Bob carries one
    expired = await engine.sweep()

    assert expired == 1
    old, new = await leases_for(session, "ORD-1")
    assert old.status == LeaseStatus.EXPIRED
    assert new.status == LeaseStatus.ASSIGNED
    assert new.watchman_id == 2
    assert new.reassigned_from == first.lease_id

    stats = StatRepository(session)
    assert (await stats.snapshot(1)).total_expired == 1
    assert (await stats.snapshot(2)).total_assigned == 2
    assert metrics.counter_value("leases.expired") == 1
    assert metrics.counter_value("leases.reassigned") == 1


@pytest.mark.asyncio
async def test_second_sweep_is_a_no_op(engine, session, watchmen):
    await engine.assign("ORD-1")
    await backdate_assigned(session, "ORD-1", TTL_SECONDS + 30)

    assert await engine.sweep() == 1
    assert await engine.sweep() == 0

    rows = await leases_for(session, "ORD-1")
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_sweep_leaves_fresh_leases_alone(engine, session, watchmen):
    await engine.assign("ORD-1")
    await backdate_assigned(session, "ORD-1", TTL_SECONDS - 30)

    assert await engine.sweep() == 0

    (row,) = await leases_for(session, "ORD-1")
    assert row.status == LeaseStatus.ASSIGNED


@pytest.mark.asyncio
async def test_sweep_without_other_watchmen_leaves_order_unassigned(engine, session, store):
    await add_watchmen(store, [(1, "Alice")])
    await engine.assign("ORD-1")
    await backdate_assigned(session, "ORD-1", TTL_SECONDS + 1)

    assert await engine.sweep() == 1

    rows = await leases_for(session, "ORD-1")
    assert [r.status for r in rows] == [LeaseStatus.EXPIRED]
    assert metrics.counter_value("reassign.no_watchmen") == 1

    # Expired leases are never assigned again by later sweeps
    assert await engine.sweep() == 0


@pytest.mark.asyncio
async def test_sweep_handles_more_leases_than_one_batch(engine, session, watchmen):
    for order_ref in ("ORD-1", "ORD-2", "ORD-3"):
        await engine.assign(order_ref)
        await backdate_assigned(session, order_ref, TTL_SECONDS + 10)

    expired = await engine.sweep(batch_size=2)

    assert expired == 3
    for order_ref in ("ORD-1", "ORD-2", "ORD-3"):
        rows = await leases_for(session, order_ref)
        assert [r.status for r in rows] == [LeaseStatus.EXPIRED, LeaseStatus.ASSIGNED]
        assert rows[1].watchman_id != rows[0].watchman_id


@pytest.mark.asyncio
async def test_sweep_respects_max_leases(engine, session, watchmen):
    for order_ref in ("ORD-1", "ORD-2", "ORD-3"):
        await engine.assign(order_ref)
        await backdate_assigned(session, order_ref, TTL_SECONDS + 10)

    assert await engine.sweep(max_leases=2) == 2
    assert await engine.sweep(max_leases=2) == 1


@pytest.mark.asyncio
async def test_counters_match_lease_history(engine, session, watchmen):
    """assigned == confirmed + expired + currently assigned, per watchman."""
    for order_ref in ("ORD-1", "ORD-2", "ORD-3", "ORD-4"):
        await engine.assign(order_ref)
    await engine.confirm("ORD-2", 2, "Bob")
    await backdate_assigned(session, "ORD-1", TTL_SECONDS + 1)
    await backdate_assigned(session, "ORD-3", TTL_SECONDS + 1)
    await engine.sweep()

    stats = StatRepository(session)
    for watchman_id in (1, 2, 3):
        stat = await stats.snapshot(watchman_id)
        open_count = (
            await session.execute(
                select(func.count())
                .select_from(LeaseTable)
                .where(
                    LeaseTable.watchman_id == watchman_id,
                    LeaseTable.status == LeaseStatus.ASSIGNED,
                )
            )
        ).scalar_one()
        assert stat.total_assigned == stat.total_confirmed + stat.total_expired + open_count


@pytest.mark.asyncio
async def test_run_sweep_commits_through_store(store, watchmen):
    async with store.session() as session:
        await WatchGateEngine(session).assign("ORD-1")
        await backdate_assigned(session, "ORD-1", TTL_SECONDS + 1)

    assert await run_sweep(store) == 1

    async with store.session() as session:
        rows = await leases_for(session, "ORD-1")
    assert [r.status for r in rows] == [LeaseStatus.EXPIRED, LeaseStatus.ASSIGNED]


@pytest.mark.asyncio
async def test_sweep_loop_expires_in_background(store, watchmen):
    async with store.session() as session:
        await WatchGateEngine(session).assign("ORD-1")
        await backdate_assigned(session, "ORD-1", TTL_SECONDS + 1)

    await start_lease_sweep(store, interval_seconds=0.05)
    try:
        for _ in range(100):
            async with store.session() as session:
                rows = await leases_for(session, "ORD-1")
            if rows[0].status == LeaseStatus.EXPIRED:
                break
            await asyncio.sleep(0.02)
    finally:
        await stop_lease_sweep()

    assert rows[0].status == LeaseStatus.EXPIRED
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_previous_holder_cannot_confirm_after_sweep(engine, session, watchmen):
    await engine.assign("ORD-1")
    second = await engine.assign("ORD-2")
    assert second.watchman_id == 2
    await backdate_assigned(session, "ORD-2", TTL_SECONDS + 5)

    assert await engine.sweep() == 1

    rows = await leases_for(session, "ORD-2")
    assert rows[-1].watchman_id != 2
    assert rows[-1].status == LeaseStatus.ASSIGNED

    with pytest.raises(LeaseNotFound):
        await engine.confirm("ORD-2", 2, "Bob")


@pytest.mark.asyncio
async def test_round_robin_sweep_spreads_reassignments(engine_factory, session, store):
    """Leases reassigned in one sweep share a timestamp yet still rotate."""
    await add_watchmen(store, [(1, "Alice"), (2, "Bob"), (3, "Carol"), (4, "Dave"), (5, "Erin")])
    engine = engine_factory(selection_policy=SelectionPolicy.ROUND_ROBIN)
    order_refs = [f"ORD-{i}" for i in range(1, 6)]
    for order_ref in order_refs:
        await engine.assign(order_ref)
    for order_ref in order_refs:
        await backdate_assigned(session, order_ref, TTL_SECONDS + 10)

    assert await engine.sweep() == 5

    holders = []
    for order_ref in order_refs:
        rows = await leases_for(session, order_ref)
        holders.append(rows[-1].watchman_id)
    assert holders == [2, 3, 4, 5, 1]


@pytest.mark.asyncio
async def test_concurrent_sweeps_and_late_confirm(store, watchmen):
    """Two sweeps and a late confirmation racing expire each lease once."""
    order_refs = ("ORD-1", "ORD-2", "ORD-3")
    async with store.session() as session:
        engine = WatchGateEngine(session)
        for order_ref in order_refs:
            await engine.assign(order_ref)
            await backdate_assigned(session, order_ref, TTL_SECONDS + 1)

    results = await asyncio.gather(
        store.run(lambda s: WatchGateEngine(s).sweep()),
        store.run(lambda s: WatchGateEngine(s).sweep()),
        store.run(lambda s: WatchGateEngine(s).confirm("ORD-1", 1, "Alice")),
        return_exceptions=True,
    )

    first_sweep, second_sweep, confirm_result = results
    assert isinstance(confirm_result, (LeaseExpired, LeaseNotFound))
    expired_by_confirm = 1 if isinstance(confirm_result, LeaseExpired) else 0
    assert first_sweep + second_sweep + expired_by_confirm == 3

    async with store.session() as session:
        for order_ref in order_refs:
            rows = await leases_for(session, order_ref)
            assert sorted(r.status.value for r in rows) == ["assigned", "expired"]

        stats = StatRepository(session)
        total_expired = 0
        for watchman_id in (1, 2, 3):
            stat = await stats.snapshot(watchman_id)
            open_count = (
                await session.execute(
                    select(func.count())
                    .select_from(LeaseTable)
                    .where(
                        LeaseTable.watchman_id == watchman_id,
                        LeaseTable.status == LeaseStatus.ASSIGNED,
                    )
                )
            ).scalar_one()
            assert stat.total_assigned == stat.total_confirmed + stat.total_expired + open_count
            total_expired += stat.total_expired
    assert total_expired == 3
