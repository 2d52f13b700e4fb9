"""WatchGate - lease-based order verification dispatch."""

__version__ = "0.1.0"
