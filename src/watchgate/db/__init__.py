"""WatchGate database layer."""

from watchgate.db.base import Base, Store
from watchgate.db.tables import (
    LeaseTable,
    OrderTable,
    WatchmanStatTable,
    WatchmanTable,
)

__all__ = [
    "Base",
    "LeaseTable",
    "OrderTable",
    "Store",
    "WatchmanStatTable",
    "WatchmanTable",
]
