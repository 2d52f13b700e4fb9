"""Order model - the external work item a lease verifies."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from watchgate.models.enums import OrderStatus
from watchgate.models.lease import Lease


class Order(BaseModel):
    """Order as seen through the order store."""

    order_ref: str
    customer: str = "Customer"
    items: list[Any] = Field(default_factory=list)
    total: float = 0.0
    status: OrderStatus
    created_at: datetime | None = None
    completed_at: datetime | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None


class SecurityInfo(BaseModel):
    """Verification state of an order, taken from its latest lease."""

    watchman_id: int
    watchman_name: str
    status: str
    assigned_at: datetime
    confirmed_at: datetime | None = None
    completion_seconds: int | None = None

    @classmethod
    def from_lease(cls, lease: Lease) -> "SecurityInfo":
        return cls(
            watchman_id=lease.watchman_id,
            watchman_name=lease.watchman_name,
            status=lease.status.value,
            assigned_at=lease.created_at,
            confirmed_at=lease.confirmed_at,
            completion_seconds=lease.completion_seconds,
        )


class OrderDetail(Order):
    """Order joined with its verification state."""

    security_info: SecurityInfo | None = None
