"""WatchGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from watchgate import __version__
from watchgate.api import router
from watchgate.config import settings
from watchgate.db.base import Store
from watchgate.tasks.sweep import start_lease_sweep, stop_lease_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("watchgate")


def build_store() -> Store:
    """Store configured from settings."""
    return Store(
        settings.async_database_url,
        timeout_seconds=settings.store_timeout_seconds,
        pool_size=settings.store_pool_size,
        max_overflow=settings.store_max_overflow,
        echo=settings.debug,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting WatchGate server...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(
        f"Lease TTL: {settings.lease_ttl_seconds}s, "
        f"selection policy: {settings.selection_policy.value}, "
        f"watchman slots: {settings.watchman_capacity}"
    )

    store = build_store()
    await store.open()
    app.state.store = store
    logger.info("Store initialized")

    if settings.sweep_enabled:
        await start_lease_sweep(store)
        logger.info("Lease sweep task started")

    yield

    logger.info("Shutting down WatchGate server...")
    if settings.sweep_enabled:
        await stop_lease_sweep()
    await store.close()
    app.state.store = None
    logger.info("Shutdown complete")


app = FastAPI(
    title="WatchGate",
    description="Lease-based assignment of completed orders to on-duty watchmen",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "watchgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
