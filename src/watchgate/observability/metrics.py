"""In-process metrics for WatchGate: event counts and value summaries."""

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

# Upper bounds for summary buckets; values above the last bound land in "+inf"
BUCKET_BOUNDS: dict[str, tuple[float, ...]] = {
    "lease.completion_seconds": (30, 60, 120, 300),
    "db.query.duration_ms": (1, 5, 25, 100),
}


@dataclass
class Summary:
    """Running count, sum and extremes of observed values, plus bucket tallies."""

    bounds: tuple[float, ...] = ()
    count: int = 0
    total: float = 0.0
    low: float | None = None
    high: float | None = None
    buckets: Counter = field(default_factory=Counter)

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.low = value if self.low is None else min(self.low, value)
        self.high = value if self.high is None else max(self.high, value)
        if self.bounds:
            label = next((f"le_{b:g}" for b in self.bounds if value <= b), "+inf")
            self.buckets[label] += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "min": self.low,
            "max": self.high,
            "avg": self.total / self.count if self.count else 0.0,
            "buckets": dict(self.buckets),
        }


class MetricsRegistry:
    """Shared by request handlers and the sweep task; every access holds the lock."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counts: Counter = Counter()
        self._summaries: dict[str, Summary] = {}

    def inc_counter(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            summary = self._summaries.get(name)
            if summary is None:
                summary = self._summaries[name] = Summary(bounds=BUCKET_BOUNDS.get(name, ()))
            summary.add(value)

    def counter_value(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counts),
                "histograms": {name: s.as_dict() for name, s in self._summaries.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._summaries.clear()


metrics = MetricsRegistry()
