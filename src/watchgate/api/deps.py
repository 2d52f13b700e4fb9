"""API dependencies."""

import logging

from fastapi import HTTPException, Path, Request

from watchgate.config import settings
from watchgate.db.base import Store
from watchgate.engine.errors import InvalidWatchmanId
from watchgate.models import is_valid_watchman_id

logger = logging.getLogger("watchgate.api")


def get_store(request: Request) -> Store:
    """The store opened by the application lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Store not initialized; application lifespan did not run")
    return store


def check_watchman_id(watchman_id: int) -> int:
    """Reject ids outside the configured watchman slots."""
    if not is_valid_watchman_id(watchman_id, settings.watchman_capacity):
        error = InvalidWatchmanId(watchman_id, settings.watchman_capacity)
        raise HTTPException(status_code=400, detail=error.to_dict())
    return watchman_id


def get_watchman_id(watchman_id: int = Path(..., description="Watchman slot id")) -> int:
    return check_watchman_id(watchman_id)
