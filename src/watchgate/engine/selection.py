"""Watchman selection policies.

Both policies are pure: the engine gathers the candidates (active watchmen,
already narrowed by any exclusion) and the load or history they need.
"""

from typing import Optional, Sequence

from watchgate.models import Watchman


def pick_least_loaded(candidates: Sequence[Watchman], loads: dict[int, int]) -> Watchman:
    """Fewest assigned leases in the TTL window wins; ties go to the lowest id."""
    if not candidates:
        raise ValueError("No candidates to pick from")
    return min(candidates, key=lambda w: (loads.get(w.watchman_id, 0), w.watchman_id))


def pick_round_robin(candidates: Sequence[Watchman], last_watchman_id: Optional[int]) -> Watchman:
    """
    Next watchman after the one that received the most recent lease.

    Walks ids upward from ``last_watchman_id`` and wraps to the lowest id.
    The previous holder need not be among the candidates.
    """
    if not candidates:
        raise ValueError("No candidates to pick from")
    ordered = sorted(candidates, key=lambda w: w.watchman_id)
    if last_watchman_id is None:
        return ordered[0]
    for watchman in ordered:
        if watchman.watchman_id > last_watchman_id:
            return watchman
    return ordered[0]
