"""WatchGate enumerations."""

from enum import Enum


class LeaseStatus(str, Enum):
    """Lease lifecycle status."""

    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"

    @classmethod
    def terminal_states(cls) -> set["LeaseStatus"]:
        """Return terminal states."""
        return {cls.CONFIRMED, cls.EXPIRED}

    def is_terminal(self) -> bool:
        """Check if status is terminal."""
        return self in self.terminal_states()


class WatchmanStatus(str, Enum):
    """Watchman duty status, as kept by the watchman directory."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class OrderStatus(str, Enum):
    """Order status, as kept by the order store."""

    PENDING = "pending"
    COMPLETED = "completed"
    VERIFIED = "verified"


class StatField(str, Enum):
    """Counters kept per watchman."""

    TOTAL_ASSIGNED = "total_assigned"
    TOTAL_CONFIRMED = "total_confirmed"
    TOTAL_EXPIRED = "total_expired"
