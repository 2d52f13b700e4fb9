"""WatchGate background tasks."""

from watchgate.tasks.sweep import run_sweep, start_lease_sweep, stop_lease_sweep

__all__ = ["run_sweep", "start_lease_sweep", "stop_lease_sweep"]
