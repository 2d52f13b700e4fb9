"""WatchGate data models."""

from watchgate.models.enums import LeaseStatus, OrderStatus, StatField, WatchmanStatus
from watchgate.models.lease import Lease
from watchgate.models.order import Order, OrderDetail, SecurityInfo
from watchgate.models.stats import (
    WatchmanReport,
    WorkerStat,
    WorkerStatSnapshot,
    compute_efficiency,
)
from watchgate.models.watchman import Watchman, is_valid_watchman_id

__all__ = [
    "Lease",
    "LeaseStatus",
    "Order",
    "OrderDetail",
    "OrderStatus",
    "SecurityInfo",
    "StatField",
    "Watchman",
    "WatchmanReport",
    "WatchmanStatus",
    "WorkerStat",
    "WorkerStatSnapshot",
    "compute_efficiency",
    "is_valid_watchman_id",
]
