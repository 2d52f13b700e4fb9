"""Database repositories for WatchGate entities."""

from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from watchgate.db.tables import LeaseTable, OrderTable, WatchmanStatTable, WatchmanTable
from watchgate.models import (
    Lease,
    LeaseStatus,
    Order,
    OrderStatus,
    StatField,
    Watchman,
    WatchmanStatus,
    WorkerStat,
)
from watchgate.utils.time import ensure_utc, utc_now


class WatchmanRepository:
    """Read-only view of the watchman directory."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active(self) -> list[Watchman]:
        """Active watchmen in ascending id order."""
        result = await self.session.execute(
            select(WatchmanTable)
            .where(WatchmanTable.status == WatchmanStatus.ACTIVE)
            .order_by(WatchmanTable.watchman_id.asc())
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def resolve(self, watchman_id: int) -> Watchman | None:
        """Look up a watchman by id, whatever the duty status."""
        result = await self.session.execute(
            select(WatchmanTable).where(WatchmanTable.watchman_id == watchman_id)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_active(self, watchman_id: int) -> Watchman | None:
        watchman = await self.resolve(watchman_id)
        if watchman is None or not watchman.is_active:
            return None
        return watchman

    def _row_to_model(self, row: WatchmanTable) -> Watchman:
        return Watchman(
            watchman_id=row.watchman_id,
            name=row.name,
            contact=row.contact,
            email=row.email,
            status=row.status,
            registered_at=ensure_utc(row.registered_at),
            last_login=ensure_utc(row.last_login),
        )


class OrderRepository:
    """Order store, as far as verification needs it."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, order_ref: str) -> Order | None:
        result = await self.session.execute(
            select(OrderTable).where(OrderTable.order_ref == order_ref)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def exists(self, order_ref: str) -> bool:
        result = await self.session.execute(
            select(OrderTable.order_ref).where(OrderTable.order_ref == order_ref).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def mark_verified(self, order_ref: str, verifier_label: str, timestamp: datetime) -> bool:
        """Record verification. Returns False when the order store has no such order."""
        result = await self.session.execute(
            update(OrderTable)
            .where(OrderTable.order_ref == order_ref)
            .values(
                status=OrderStatus.VERIFIED,
                verified_at=timestamp,
                verified_by=verifier_label,
            )
        )
        return result.rowcount > 0

    async def list_recent(self, limit: int = 50) -> list[Order]:
        result = await self.session.execute(
            select(OrderTable).order_by(OrderTable.created_at.desc()).limit(limit)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    def _row_to_model(self, row: OrderTable) -> Order:
        return Order(
            order_ref=row.order_ref,
            customer=row.customer or "Customer",
            items=row.items or [],
            total=row.total or 0.0,
            status=row.status,
            created_at=ensure_utc(row.created_at),
            completed_at=ensure_utc(row.completed_at),
            verified_at=ensure_utc(row.verified_at),
            verified_by=row.verified_by,
        )


class LeaseRepository:
    """Repository for lease operations.

    Status changes only ever go through conditional_transition(), which
    matches on the expected current status so that concurrent actors
    cannot both win.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(
        self,
        order_ref: str,
        watchman: Watchman,
        created_at: datetime,
        reassigned_from: UUID | None = None,
        customer_name: str | None = None,
        total_amount: float = 0.0,
    ) -> Lease:
        """
        Insert a new assigned lease.

        The partial unique index on assigned leases decides concurrent
        dispatches: the loser gets AlreadyAssigned and its savepoint is
        rolled back, leaving the surrounding transaction usable.
        """
        from watchgate.engine.errors import AlreadyAssigned

        lease_row = LeaseTable(
            lease_id=uuid4(),
            order_ref=order_ref,
            watchman_id=watchman.watchman_id,
            watchman_name=watchman.name,
            status=LeaseStatus.ASSIGNED,
            created_at=created_at,
            reassigned_from=reassigned_from,
            customer_name=customer_name,
            total_amount=total_amount,
        )

        try:
            async with self.session.begin_nested():
                self.session.add(lease_row)
                await self.session.flush()
        except IntegrityError:
            raise AlreadyAssigned(order_ref)

        return self._row_to_model(lease_row)

    async def find_active(self, order_ref: str) -> Lease | None:
        """The assigned lease for an order, if any."""
        result = await self.session.execute(
            select(LeaseTable).where(
                LeaseTable.order_ref == order_ref,
                LeaseTable.status == LeaseStatus.ASSIGNED,
            )
        )
        row = result.scalars().first()
        return self._row_to_model(row) if row else None

    async def find_assigned(self, order_ref: str, watchman_id: int) -> Lease | None:
        """The assigned lease for an order held by a given watchman."""
        result = await self.session.execute(
            select(LeaseTable).where(
                LeaseTable.order_ref == order_ref,
                LeaseTable.watchman_id == watchman_id,
                LeaseTable.status == LeaseStatus.ASSIGNED,
            )
        )
        row = result.scalars().first()
        return self._row_to_model(row) if row else None

    async def conditional_transition(
        self,
        lease_id: UUID,
        expected_status: LeaseStatus,
        new_status: LeaseStatus,
        **fields,
    ) -> bool:
        """
        Move a lease to ``new_status`` only if it is still ``expected_status``.

        Returns False when another actor got there first.
        """
        if expected_status.is_terminal():
            raise ValueError(f"Lease status {expected_status.value} is terminal")
        result = await self.session.execute(
            update(LeaseTable)
            .where(
                LeaseTable.lease_id == lease_id,
                LeaseTable.status == expected_status,
            )
            .values(status=new_status, **fields)
        )
        return result.rowcount == 1

    async def find_expired_past_ttl(
        self,
        ttl_seconds: int,
        limit: int = 100,
        now: datetime | None = None,
    ) -> list[Lease]:
        """Assigned leases created more than ``ttl_seconds`` ago, oldest first."""
        cutoff = (now or utc_now()) - timedelta(seconds=ttl_seconds)
        result = await self.session.execute(
            select(LeaseTable)
            .where(
                LeaseTable.status == LeaseStatus.ASSIGNED,
                LeaseTable.created_at < cutoff,
            )
            .order_by(LeaseTable.created_at.asc())
            .limit(limit)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def count_active_for(
        self,
        watchman_id: int,
        window_seconds: int,
        now: datetime | None = None,
    ) -> int:
        """Assigned leases for a watchman created inside the window."""
        since = (now or utc_now()) - timedelta(seconds=window_seconds)
        result = await self.session.execute(
            select(func.count())
            .select_from(LeaseTable)
            .where(
                LeaseTable.watchman_id == watchman_id,
                LeaseTable.status == LeaseStatus.ASSIGNED,
                LeaseTable.created_at >= since,
            )
        )
        return result.scalar_one()

    async def active_counts(
        self,
        window_seconds: int,
        now: datetime | None = None,
    ) -> dict[int, int]:
        """Assigned-lease counts inside the window, keyed by watchman id."""
        since = (now or utc_now()) - timedelta(seconds=window_seconds)
        result = await self.session.execute(
            select(LeaseTable.watchman_id, func.count())
            .where(
                LeaseTable.status == LeaseStatus.ASSIGNED,
                LeaseTable.created_at >= since,
            )
            .group_by(LeaseTable.watchman_id)
        )
        return {watchman_id: count for watchman_id, count in result.all()}

    async def latest(self) -> Lease | None:
        """Most recently created lease across all orders."""
        result = await self.session.execute(
            select(LeaseTable).order_by(LeaseTable.created_at.desc()).limit(1)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def latest_for_order(self, order_ref: str) -> Lease | None:
        result = await self.session.execute(
            select(LeaseTable)
            .where(LeaseTable.order_ref == order_ref)
            .order_by(LeaseTable.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list_for_order(self, order_ref: str) -> list[Lease]:
        """Every lease for an order, oldest first."""
        result = await self.session.execute(
            select(LeaseTable)
            .where(LeaseTable.order_ref == order_ref)
            .order_by(LeaseTable.created_at.asc())
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def list_pending(
        self,
        watchman_id: int,
        window_seconds: int,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[Lease]:
        """Unexpired assigned leases for a watchman, newest first."""
        since = (now or utc_now()) - timedelta(seconds=window_seconds)
        result = await self.session.execute(
            select(LeaseTable)
            .where(
                LeaseTable.watchman_id == watchman_id,
                LeaseTable.status == LeaseStatus.ASSIGNED,
                LeaseTable.created_at >= since,
            )
            .order_by(LeaseTable.created_at.desc())
            .limit(limit)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def list_confirmed_between(
        self,
        watchman_id: int,
        start: datetime,
        end: datetime,
        limit: int = 20,
    ) -> list[Lease]:
        """Leases a watchman confirmed in [start, end), newest first."""
        result = await self.session.execute(
            select(LeaseTable)
            .where(
                LeaseTable.watchman_id == watchman_id,
                LeaseTable.status == LeaseStatus.CONFIRMED,
                LeaseTable.confirmed_at >= start,
                LeaseTable.confirmed_at < end,
            )
            .order_by(LeaseTable.confirmed_at.desc())
            .limit(limit)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def confirmed_totals_between(
        self,
        watchman_id: int,
        start: datetime,
        end: datetime,
    ) -> tuple[int, float]:
        """Count and summed order amount of confirmations in [start, end)."""
        result = await self.session.execute(
            select(func.count(), func.coalesce(func.sum(LeaseTable.total_amount), 0.0))
            .where(
                LeaseTable.watchman_id == watchman_id,
                LeaseTable.status == LeaseStatus.CONFIRMED,
                LeaseTable.confirmed_at >= start,
                LeaseTable.confirmed_at < end,
            )
        )
        count, total = result.one()
        return int(count), float(total)

    def _row_to_model(self, row: LeaseTable) -> Lease:
        """Convert database row to model."""
        return Lease(
            lease_id=row.lease_id,
            order_ref=row.order_ref,
            watchman_id=row.watchman_id,
            watchman_name=row.watchman_name,
            status=row.status,
            created_at=ensure_utc(row.created_at),
            confirmed_at=ensure_utc(row.confirmed_at),
            confirmed_by=row.confirmed_by,
            expired_at=ensure_utc(row.expired_at),
            completion_seconds=row.completion_seconds,
            reassigned_from=row.reassigned_from,
            customer_name=row.customer_name,
            total_amount=row.total_amount or 0.0,
        )


class StatRepository:
    """Per-watchman counters. Increments are single upsert statements."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(WatchmanStatTable)
        if dialect == "sqlite":
            return sqlite_insert(WatchmanStatTable)
        raise NotImplementedError(f"No atomic upsert for dialect {dialect}")

    async def increment(
        self,
        watchman_id: int,
        field: StatField,
        now: datetime | None = None,
    ) -> None:
        """Atomically add one to a counter, creating the row on first use."""
        now = now or utc_now()
        values = {
            "watchman_id": watchman_id,
            StatField.TOTAL_ASSIGNED.value: 0,
            StatField.TOTAL_CONFIRMED.value: 0,
            StatField.TOTAL_EXPIRED.value: 0,
            "created_at": now,
            "last_updated": now,
        }
        values[field.value] = 1

        column = getattr(WatchmanStatTable, field.value)
        stmt = self._insert().values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[WatchmanStatTable.watchman_id],
            set_={field.value: column + 1, "last_updated": now},
        )
        await self.session.execute(stmt)

    async def snapshot(self, watchman_id: int) -> WorkerStat:
        """Stored counters, zeros if the watchman was never assigned anything."""
        # Increments bypass the identity map, so always reload the row
        result = await self.session.execute(
            select(WatchmanStatTable)
            .where(WatchmanStatTable.watchman_id == watchman_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return WorkerStat(watchman_id=watchman_id)
        return WorkerStat(
            watchman_id=row.watchman_id,
            total_assigned=row.total_assigned,
            total_confirmed=row.total_confirmed,
            total_expired=row.total_expired,
            last_updated=ensure_utc(row.last_updated),
        )
