"""Observability helpers for WatchGate."""

from watchgate.observability.metrics import metrics

__all__ = ["metrics"]
