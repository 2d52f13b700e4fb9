"""WatchGate engine - lease lifecycle and reporting."""

from watchgate.engine.errors import (
    AlreadyAssigned,
    IdentityMismatch,
    InvalidWatchmanId,
    LeaseExpired,
    LeaseNotFound,
    NoWorkersAvailable,
    OrderNotFound,
    StoreUnavailable,
    WatchGateError,
    WorkerNotFound,
)
from watchgate.engine.core import WatchGateEngine
from watchgate.engine.reporting import ReportingService

__all__ = [
    "AlreadyAssigned",
    "IdentityMismatch",
    "InvalidWatchmanId",
    "LeaseExpired",
    "LeaseNotFound",
    "NoWorkersAvailable",
    "OrderNotFound",
    "ReportingService",
    "StoreUnavailable",
    "WatchGateEngine",
    "WatchGateError",
    "WorkerNotFound",
]
