"""Lease expiry sweep background task."""

import asyncio
import logging
import random
from typing import Optional

from watchgate.config import settings
from watchgate.db.base import Store
from watchgate.engine import WatchGateEngine

logger = logging.getLogger("watchgate.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def run_sweep(store: Store) -> int:
    """One sweep as a single unit of work against the store."""

    async def _sweep(session) -> int:
        return await WatchGateEngine(session).sweep()

    return await store.run(_sweep)


async def lease_sweep_loop(store: Store, interval_seconds: float | None = None):
    """
    Background loop that expires stale leases and reassigns their orders.

    The loop only decides *when* to sweep; WatchGateEngine.sweep() decides
    what expires, so the trigger can be swapped without touching it.
    Failures are logged and the next tick tries again. The interval is
    jittered by ±20% so several instances do not sweep in lockstep.
    """
    base_interval = interval_seconds or settings.sweep_interval_seconds
    logger.info(f"Lease sweep loop started (base interval: {base_interval}s with ±20% jitter)")

    while not _shutdown_event.is_set():
        try:
            expired_count = await run_sweep(store)
            if expired_count > 0:
                logger.info(f"Expired {expired_count} leases")
        except Exception as e:
            logger.error(f"Lease sweep error: {e}", exc_info=True)

        jittered_interval = base_interval * random.uniform(0.8, 1.2)

        try:
            await asyncio.wait_for(
                _shutdown_event.wait(),
                timeout=jittered_interval,
            )
        except asyncio.TimeoutError:
            pass

    logger.info("Lease sweep loop stopped")


async def start_lease_sweep(store: Store, interval_seconds: float | None = None):
    """Start the lease sweep background task."""
    global _sweep_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(lease_sweep_loop(store, interval_seconds))


async def stop_lease_sweep():
    """Stop the lease sweep background task."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Lease sweep task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None
