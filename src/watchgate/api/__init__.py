"""WatchGate HTTP API."""

from watchgate.api.router import router

__all__ = ["router"]
