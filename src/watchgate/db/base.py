"""Database connection, session management and the resilient store handle."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import event, exc as sa_exc, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from watchgate.observability.metrics import metrics

logger = logging.getLogger("watchgate.store")

T = TypeVar("T")

# Failures that a fresh connection may cure. Anything else is a real error.
TRANSIENT_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def _attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Attach SQLAlchemy event listeners for query metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_watchgate_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is None:
            return
        duration_ms = (time.perf_counter() - start_time) * 1000.0
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", duration_ms)

    sync_engine._watchgate_metrics_attached = True


def _use_explicit_sqlite_transactions(target_engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own BEGIN on SQLite.

    The driver's implicit transactions break SAVEPOINT. BEGIN IMMEDIATE
    takes the write lock up front, so concurrent units of work queue on the
    busy timeout instead of failing on lock upgrade.
    """
    sync_engine = target_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Store:
    """
    Handle on the lease/stat store with an explicit lifecycle.

    open() at startup, close() at shutdown. Every unit of work goes through
    run(), which bounds it with a timeout and, on a transient failure,
    rebuilds the engine and retries exactly once before raising
    StoreUnavailable.
    """

    def __init__(
        self,
        database_url: str,
        *,
        timeout_seconds: float = 5.0,
        pool_size: int = 10,
        max_overflow: int = 5,
        echo: bool = False,
    ):
        self.database_url = database_url
        self.timeout_seconds = timeout_seconds
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def _create_engine(self) -> AsyncEngine:
        kwargs: dict = {"echo": self.echo, "pool_pre_ping": True}
        if self.is_sqlite:
            # sqlite3 busy timeout, in seconds
            kwargs["connect_args"] = {"timeout": self.timeout_seconds}
        else:
            kwargs["pool_size"] = self.pool_size
            kwargs["max_overflow"] = self.max_overflow
            kwargs["pool_timeout"] = self.timeout_seconds
            kwargs["connect_args"] = {
                "timeout": self.timeout_seconds,
                "command_timeout": self.timeout_seconds,
            }
        engine = create_async_engine(self.database_url, **kwargs)
        if self.is_sqlite:
            _use_explicit_sqlite_transactions(engine)
        _attach_query_metrics(engine)
        return engine

    def _bind(self) -> None:
        self.engine = self._create_engine()
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def open(self, create_schema: bool = True) -> None:
        """Create the engine and, optionally, the tables."""
        if self.is_open:
            return
        self._bind()
        if create_schema:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Store opened")

    async def close(self) -> None:
        """Close database connections."""
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None
        logger.info("Store closed")

    async def reconnect(self) -> None:
        """Drop every pooled connection and start over with a fresh engine."""
        old_engine = self.engine
        self._bind()
        if old_engine is not None:
            try:
                await old_engine.dispose()
            except Exception as e:
                logger.warning(f"Error disposing previous engine: {e}")
        logger.info("Store reconnected")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session; commits on success, rolls back on error."""
        if self.session_factory is None:
            raise RuntimeError("Store is not open")
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _run_once(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session() as session:
            return await operation(session)

    async def run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run ``operation(session)`` as one unit of work.

        Domain errors pass through untouched and are never retried. Transient
        store failures get one reconnect-and-retry; the second failure is
        raised as StoreUnavailable.
        """
        for attempt in (1, 2):
            try:
                return await asyncio.wait_for(
                    self._run_once(operation),
                    timeout=self.timeout_seconds,
                )
            except TRANSIENT_ERRORS as e:
                reason = str(e) or type(e).__name__
                if attempt == 2:
                    from watchgate.engine.errors import StoreUnavailable

                    metrics.inc_counter("store.unavailable")
                    logger.error(f"Store unavailable after retry: {reason}")
                    raise StoreUnavailable(reason) from e
                metrics.inc_counter("store.retries")
                logger.warning(f"Store call failed ({reason}), reconnecting and retrying once")
                await self.reconnect()
        raise AssertionError("unreachable")

    async def ping(self) -> bool:
        """Round-trip a trivial query."""

        async def _ping(session: AsyncSession) -> bool:
            await session.execute(text("SELECT 1"))
            return True

        return await self.run(_ping)
