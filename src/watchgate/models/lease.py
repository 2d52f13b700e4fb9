"""Lease model - one watchman's time-bounded claim on one order."""

from datetime import datetime, timedelta
from uuid import UUID

from pydantic import BaseModel

from watchgate.models.enums import LeaseStatus
from watchgate.utils.time import utc_now


class Lease(BaseModel):
    """Represents a watchman's claim on an order awaiting verification."""

    lease_id: UUID
    order_ref: str
    watchman_id: int
    watchman_name: str
    status: LeaseStatus
    created_at: datetime
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None
    expired_at: datetime | None = None
    completion_seconds: int | None = None
    reassigned_from: UUID | None = None
    customer_name: str | None = None
    total_amount: float = 0.0

    def elapsed(self, now: datetime | None = None) -> timedelta:
        """Time since the lease was created, by the server clock."""
        if now is None:
            now = utc_now()
        return now - self.created_at

