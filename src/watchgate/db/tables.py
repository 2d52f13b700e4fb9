"""SQLAlchemy table definitions."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from watchgate.db.base import Base
from watchgate.models.enums import LeaseStatus, OrderStatus, WatchmanStatus


def _enum(enum_cls: type, name: str) -> Enum:
    """Store enum values ("assigned"), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class WatchmanTable(Base):
    """Watchmen table - the directory of registered verifiers."""

    __tablename__ = "watchmen"

    watchman_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_lower: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    contact: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[WatchmanStatus] = mapped_column(
        _enum(WatchmanStatus, "watchmanstatus"), nullable=False, default=WatchmanStatus.ACTIVE
    )
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_watchmen_status", "status", "watchman_id"),
    )


class OrderTable(Base):
    """Orders table - work items awaiting or past verification."""

    __tablename__ = "orders"

    order_ref: Mapped[str] = mapped_column(String(255), primary_key=True)
    customer: Mapped[str] = mapped_column(String(255), nullable=False, default="Customer")
    items: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus, "orderstatus"), nullable=False, default=OrderStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_orders_created", "created_at"),
    )


class LeaseTable(Base):
    """Leases table - append-only history of watchman claims on orders."""

    __tablename__ = "leases"

    lease_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    order_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    watchman_id: Mapped[int] = mapped_column(Integer, nullable=False)
    watchman_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[LeaseStatus] = mapped_column(
        _enum(LeaseStatus, "leasestatus"), nullable=False, default=LeaseStatus.ASSIGNED
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Reassignment chain: the expired lease this one supersedes
    reassigned_from: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("leases.lease_id"), nullable=True
    )

    # Order snapshot at assignment time
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (
        # At most one assigned lease per order
        Index(
            "uq_leases_order_assigned",
            "order_ref",
            unique=True,
            postgresql_where=text("status = 'assigned'"),
            sqlite_where=text("status = 'assigned'"),
        ),
        # An expired lease is superseded at most once
        Index("uq_leases_reassigned_from", "reassigned_from", unique=True),
        # Index for expiry sweeps
        Index("idx_leases_status_created", "status", "created_at"),
        # Index for per-watchman lookups
        Index("idx_leases_watchman", "watchman_id", "status", "created_at"),
        # Index for order history
        Index("idx_leases_order", "order_ref", "created_at"),
    )


class WatchmanStatTable(Base):
    """Watchman stats table - atomic per-watchman counters."""

    __tablename__ = "watchman_stats"

    watchman_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    total_assigned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_confirmed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_expired: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
