"""Read-only views over leases and counters."""

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from watchgate.config import settings
from watchgate.db.repositories import (
    LeaseRepository,
    OrderRepository,
    StatRepository,
    WatchmanRepository,
)
from watchgate.engine.errors import OrderNotFound, WorkerNotFound
from watchgate.models import (
    Lease,
    Order,
    OrderDetail,
    SecurityInfo,
    Watchman,
    WatchmanReport,
    WorkerStatSnapshot,
)
from watchgate.utils.time import start_of_day, utc_now


class ReportingService:
    """Point-in-time views. Nothing here writes to the store."""

    def __init__(self, session: AsyncSession, lease_ttl_seconds: int | None = None):
        self.session = session
        self.watchmen = WatchmanRepository(session)
        self.orders = OrderRepository(session)
        self.leases = LeaseRepository(session)
        self.stats = StatRepository(session)
        self.lease_ttl_seconds = lease_ttl_seconds or settings.lease_ttl_seconds

    async def _require_active(self, watchman_id: int) -> Watchman:
        watchman = await self.watchmen.get_active(watchman_id)
        if watchman is None:
            raise WorkerNotFound(watchman_id)
        return watchman

    async def stats_for(self, watchman_id: int) -> WorkerStatSnapshot:
        """Stored counters plus the live pending count."""
        await self._require_active(watchman_id)
        return await self._snapshot(watchman_id)

    async def _snapshot(self, watchman_id: int) -> WorkerStatSnapshot:
        stored = await self.stats.snapshot(watchman_id)
        pending = await self.leases.count_active_for(watchman_id, self.lease_ttl_seconds)
        return WorkerStatSnapshot(
            watchman_id=watchman_id,
            total_assigned=stored.total_assigned,
            total_confirmed=stored.total_confirmed,
            total_expired=stored.total_expired,
            last_updated=stored.last_updated,
            total_pending=pending,
        )

    async def report(self) -> list[WatchmanReport]:
        """Performance summary for every active watchman, with today's numbers."""
        today_start = start_of_day(utc_now().date())
        today_end = today_start + timedelta(days=1)

        rows = []
        for watchman in await self.watchmen.list_active():
            today_work, today_earnings = await self.leases.confirmed_totals_between(
                watchman.watchman_id, today_start, today_end
            )
            rows.append(
                WatchmanReport(
                    watchman_id=watchman.watchman_id,
                    name=watchman.name,
                    contact=watchman.contact,
                    registered_at=watchman.registered_at,
                    last_login=watchman.last_login,
                    stats=await self._snapshot(watchman.watchman_id),
                    today_work=today_work,
                    today_earnings=today_earnings,
                )
            )
        return rows

    async def pending_for(self, watchman_id: int, limit: int | None = None) -> list[Lease]:
        """A watchman's open, unexpired leases, newest first."""
        await self._require_active(watchman_id)
        return await self.leases.list_pending(
            watchman_id,
            self.lease_ttl_seconds,
            limit=limit or settings.pending_list_limit,
        )

    async def worklog(self, watchman_id: int, limit: int | None = None) -> list[Lease]:
        """Today's confirmations by a watchman, newest first."""
        await self._require_active(watchman_id)
        today_start = start_of_day(utc_now().date())
        return await self.leases.list_confirmed_between(
            watchman_id,
            today_start,
            today_start + timedelta(days=1),
            limit=limit or settings.worklog_limit,
        )

    async def lease_chain(self, order_ref: str) -> list[Lease]:
        """Every lease an order went through, oldest first."""
        return await self.leases.list_for_order(order_ref)

    async def order_detail(self, order_ref: str) -> OrderDetail:
        order = await self.orders.get(order_ref)
        if order is None:
            raise OrderNotFound(order_ref)
        return await self._with_security_info(order)

    async def recent_orders(self, limit: int | None = None) -> list[OrderDetail]:
        limit = min(limit or settings.default_list_limit, settings.max_list_limit)
        return [
            await self._with_security_info(order)
            for order in await self.orders.list_recent(limit)
        ]

    async def _with_security_info(self, order: Order) -> OrderDetail:
        latest = await self.leases.latest_for_order(order.order_ref)
        return OrderDetail(
            **order.model_dump(),
            security_info=SecurityInfo.from_lease(latest) if latest else None,
        )
