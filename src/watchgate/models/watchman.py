"""Watchman model - an on-duty verifier from the watchman directory."""

from datetime import datetime

from pydantic import BaseModel

from watchgate.models.enums import WatchmanStatus


class Watchman(BaseModel):
    """A registered watchman. Identity is owned by the directory, not the engine."""

    watchman_id: int
    name: str
    contact: str = ""
    email: str = ""
    status: WatchmanStatus = WatchmanStatus.ACTIVE
    registered_at: datetime | None = None
    last_login: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == WatchmanStatus.ACTIVE

    def matches_name(self, claimed_name: str) -> bool:
        """Compare a client-supplied name, trimmed and case-insensitively."""
        return self.name.strip().lower() == claimed_name.strip().lower()

    @property
    def verifier_label(self) -> str:
        """Label written onto an order this watchman verified."""
        return f"Security-{self.watchman_id} ({self.name})"


def is_valid_watchman_id(watchman_id: int, capacity: int) -> bool:
    """Watchman ids are the slots 1..capacity."""
    return 1 <= watchman_id <= capacity
