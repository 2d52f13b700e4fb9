"""WatchGate core engine - dispatch, confirmation and expiry."""

import asyncio
import logging
import math
import random
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from watchgate.config import SelectionPolicy, settings
from watchgate.db.repositories import (
    LeaseRepository,
    OrderRepository,
    StatRepository,
    WatchmanRepository,
)
from watchgate.engine.errors import (
    AlreadyAssigned,
    IdentityMismatch,
    LeaseExpired,
    LeaseNotFound,
    NoWorkersAvailable,
    OrderNotFound,
    WorkerNotFound,
)
from watchgate.engine.selection import pick_least_loaded, pick_round_robin
from watchgate.models import Lease, LeaseStatus, StatField, Watchman
from watchgate.observability.metrics import metrics
from watchgate.utils.time import utc_now

logger = logging.getLogger(__name__)


class WatchGateEngine:
    """Core engine implementing the lease lifecycle.

    One engine wraps one session, i.e. one unit of work. Lease state is
    authoritative: status changes are conditional updates, and counters
    follow them.
    """

    def __init__(
        self,
        session: AsyncSession,
        lease_ttl_seconds: int | None = None,
        selection_policy: SelectionPolicy | None = None,
        require_known_order: bool | None = None,
    ):
        self.session = session
        self.watchmen = WatchmanRepository(session)
        self.orders = OrderRepository(session)
        self.leases = LeaseRepository(session)
        self.stats = StatRepository(session)
        self.lease_ttl_seconds = lease_ttl_seconds or settings.lease_ttl_seconds
        self.selection_policy = selection_policy or settings.selection_policy
        if require_known_order is None:
            require_known_order = settings.require_known_order
        self.require_known_order = require_known_order
        # Round-robin position; leases created in one sweep share a timestamp
        self._last_watchman_id: Optional[int] = None

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def assign(self, order_ref: str) -> Lease:
        """
        Assign an order to an active watchman.

        Raises:
            AlreadyAssigned: The order already has an assigned lease.
            OrderNotFound: Unknown order while require_known_order is set.
            NoWorkersAvailable: Nobody is on duty.
        """
        now = utc_now()

        existing = await self.leases.find_active(order_ref)
        if existing:
            raise AlreadyAssigned(order_ref, existing.watchman_id)

        order = await self.orders.get(order_ref)
        if order is None and self.require_known_order:
            raise OrderNotFound(order_ref)

        candidates = await self.watchmen.list_active()
        if not candidates:
            raise NoWorkersAvailable(order_ref)

        watchman = await self._select(candidates, now)
        lease = await self.leases.insert(
            order_ref=order_ref,
            watchman=watchman,
            created_at=now,
            customer_name=order.customer if order else None,
            total_amount=order.total if order else 0.0,
        )
        self._last_watchman_id = watchman.watchman_id
        await self._increment(watchman.watchman_id, StatField.TOTAL_ASSIGNED, now)

        metrics.inc_counter("leases.assigned")
        logger.info(
            f"Assigned order {order_ref} to watchman {watchman.watchman_id} "
            f"(lease {lease.lease_id}, policy {self.selection_policy.value})"
        )
        return lease

    async def reassign(
        self,
        order_ref: str,
        exclude_watchman_id: int,
        supersedes: Lease | None = None,
        now: datetime | None = None,
    ) -> Optional[Lease]:
        """
        Hand an order to anyone but ``exclude_watchman_id``.

        Returns None when nobody else is on duty or another actor already
        reassigned the order; both are expected and only logged.
        """
        now = now or utc_now()

        candidates = [
            w for w in await self.watchmen.list_active()
            if w.watchman_id != exclude_watchman_id
        ]
        if not candidates:
            error = NoWorkersAvailable(order_ref, exclude_watchman_id)
            logger.warning(f"Reassignment skipped: {error.message}")
            metrics.inc_counter("reassign.no_watchmen")
            return None

        watchman = await self._select(candidates, now)
        try:
            lease = await self.leases.insert(
                order_ref=order_ref,
                watchman=watchman,
                created_at=now,
                reassigned_from=supersedes.lease_id if supersedes else None,
                customer_name=supersedes.customer_name if supersedes else None,
                total_amount=supersedes.total_amount if supersedes else 0.0,
            )
        except AlreadyAssigned:
            logger.info(f"Order {order_ref} was already reassigned by another actor")
            metrics.inc_counter("reassign.lost_race")
            return None

        self._last_watchman_id = watchman.watchman_id
        await self._increment(watchman.watchman_id, StatField.TOTAL_ASSIGNED, now)

        metrics.inc_counter("leases.reassigned")
        logger.info(
            f"Reassigned order {order_ref} from watchman {exclude_watchman_id} "
            f"to watchman {watchman.watchman_id} (lease {lease.lease_id})"
        )
        return lease

    async def _select(self, candidates: list[Watchman], now: datetime) -> Watchman:
        if self.selection_policy == SelectionPolicy.ROUND_ROBIN:
            last_id = self._last_watchman_id
            if last_id is None:
                last = await self.leases.latest()
                last_id = last.watchman_id if last else None
            return pick_round_robin(candidates, last_id)

        loads = await self.leases.active_counts(self.lease_ttl_seconds, now)
        return pick_least_loaded(candidates, loads)

    # =========================================================================
    # Confirmation
    # =========================================================================

    async def confirm(self, order_ref: str, watchman_id: int, watchman_name: str) -> int:
        """
        Confirm verification of an order.

        Returns the whole seconds between assignment and confirmation.

        A late confirmation expires the lease, hands the order to someone
        else and commits that before raising LeaseExpired, so the caller's
        rollback cannot undo it.
        """
        watchman = await self.watchmen.get_active(watchman_id)
        if watchman is None:
            raise WorkerNotFound(watchman_id)

        if not watchman.matches_name(watchman_name):
            raise IdentityMismatch(watchman_id)

        lease = await self.leases.find_assigned(order_ref, watchman_id)
        if lease is None:
            raise LeaseNotFound(order_ref, watchman_id)

        now = utc_now()
        elapsed_seconds = max(0, math.floor(lease.elapsed(now).total_seconds()))

        if elapsed_seconds > self.lease_ttl_seconds:
            if await self._expire(lease, now):
                await self.reassign(order_ref, watchman_id, supersedes=lease, now=now)
            await self.session.commit()
            raise LeaseExpired(order_ref, watchman_id, elapsed_seconds)

        confirmed = await self.leases.conditional_transition(
            lease.lease_id,
            LeaseStatus.ASSIGNED,
            LeaseStatus.CONFIRMED,
            confirmed_at=now,
            confirmed_by=watchman.name,
            completion_seconds=elapsed_seconds,
        )
        if not confirmed:
            # Swept or confirmed by a concurrent request
            raise LeaseNotFound(order_ref, watchman_id)

        await self._increment(watchman_id, StatField.TOTAL_CONFIRMED, now)

        if not await self.orders.mark_verified(order_ref, watchman.verifier_label, now):
            logger.warning(f"Order {order_ref} confirmed but unknown to the order store")

        metrics.inc_counter("leases.confirmed")
        metrics.observe("lease.completion_seconds", elapsed_seconds)
        logger.info(
            f"Watchman {watchman_id} confirmed order {order_ref} in {elapsed_seconds}s"
        )
        return elapsed_seconds

    # =========================================================================
    # Expiry
    # =========================================================================

    async def sweep(self, batch_size: int | None = None, max_leases: int | None = None) -> int:
        """
        Expire leases past their TTL and reassign their orders.

        Safe to run concurrently with other sweeps and with confirmations:
        a lease that was already moved on is skipped. Each lease is handled
        in its own savepoint; one bad lease does not stop the rest.

        Returns:
            Number of leases this call moved to expired.
        """
        batch_size = batch_size or settings.sweep_batch_size
        now = utc_now()

        stale = await self.leases.find_expired_past_ttl(
            self.lease_ttl_seconds,
            limit=max_leases or settings.sweep_max_leases,
            now=now,
        )
        count = 0

        for lease in stale:
            try:
                async with self.session.begin_nested():
                    if not await self._expire(lease, now):
                        continue
                    await self.reassign(
                        lease.order_ref,
                        lease.watchman_id,
                        supersedes=lease,
                        now=now,
                    )
            except Exception as e:
                logger.error(f"Failed to expire lease {lease.lease_id}: {e}", exc_info=True)
                metrics.inc_counter("leases.expired.failed")
                continue

            count += 1

            if count % batch_size == 0:
                await self.session.commit()
                await asyncio.sleep(random.uniform(0.01, 0.05))

        return count

    async def _expire(self, lease: Lease, now: datetime) -> bool:
        """Move an assigned lease to expired. False if someone beat us to it."""
        expired = await self.leases.conditional_transition(
            lease.lease_id,
            LeaseStatus.ASSIGNED,
            LeaseStatus.EXPIRED,
            expired_at=now,
        )
        if not expired:
            logger.info(f"Lease {lease.lease_id} already left assigned state, skipping")
            metrics.inc_counter("leases.expire.lost_race")
            return False

        await self._increment(lease.watchman_id, StatField.TOTAL_EXPIRED, now)
        metrics.inc_counter("leases.expired")
        logger.info(
            f"Expired lease {lease.lease_id} for order {lease.order_ref} "
            f"(watchman {lease.watchman_id})"
        )
        return True

    async def _increment(self, watchman_id: int, field: StatField, now: datetime) -> None:
        """
        Bump a counter without endangering the lease change it follows.

        A failed increment only rolls back its own savepoint and is logged
        as drift for reconciliation.
        """
        try:
            async with self.session.begin_nested():
                await self.stats.increment(watchman_id, field, now)
        except SQLAlchemyError as e:
            metrics.inc_counter("stats.drift")
            logger.error(
                f"STAT DRIFT: could not increment {field.value} for watchman "
                f"{watchman_id}: {e}"
            )
