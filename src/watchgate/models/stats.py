"""Per-watchman performance accounting."""

from datetime import datetime

from pydantic import BaseModel, computed_field


def compute_efficiency(total_confirmed: int, total_assigned: int) -> int:
    """Confirmed share of assignments as a percentage rounded half up, 0 when nothing was assigned."""
    if total_assigned <= 0:
        return 0
    return (200 * total_confirmed + total_assigned) // (2 * total_assigned)


class WorkerStat(BaseModel):
    """Stored counters for one watchman."""

    watchman_id: int
    total_assigned: int = 0
    total_confirmed: int = 0
    total_expired: int = 0
    last_updated: datetime | None = None

    @computed_field
    @property
    def efficiency(self) -> int:
        return compute_efficiency(self.total_confirmed, self.total_assigned)


class WorkerStatSnapshot(WorkerStat):
    """Stored counters merged with the live pending count."""

    total_pending: int = 0


class WatchmanReport(BaseModel):
    """One row of the performance report."""

    watchman_id: int
    name: str
    contact: str = ""
    registered_at: datetime | None = None
    last_login: datetime | None = None
    stats: WorkerStatSnapshot
    today_work: int = 0
    today_earnings: float = 0.0
