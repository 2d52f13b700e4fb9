"""REST API router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from watchgate import __version__
from watchgate.api.deps import check_watchman_id, get_store, get_watchman_id
from watchgate.api.schemas import (
    AssignRequest,
    ConfigResponse,
    ConfirmRequest,
    ConfirmResponse,
    HealthResponse,
    LeaseListResponse,
    MetricsResponse,
    OrderListResponse,
    ReportResponse,
    StatsResponse,
    SweepResponse,
)
from watchgate.config import settings
from watchgate.db.base import Store
from watchgate.engine import (
    AlreadyAssigned,
    IdentityMismatch,
    InvalidWatchmanId,
    LeaseExpired,
    LeaseNotFound,
    NoWorkersAvailable,
    OrderNotFound,
    ReportingService,
    StoreUnavailable,
    WatchGateEngine,
    WatchGateError,
    WorkerNotFound,
)
from watchgate.models import Lease, OrderDetail
from watchgate.observability.metrics import metrics

logger = logging.getLogger("watchgate.api")

router = APIRouter(prefix="/v1")

ERROR_STATUS = {
    AlreadyAssigned: 409,
    NoWorkersAvailable: 503,
    WorkerNotFound: 404,
    IdentityMismatch: 403,
    InvalidWatchmanId: 400,
    LeaseNotFound: 404,
    LeaseExpired: 410,
    OrderNotFound: 404,
    StoreUnavailable: 503,
}


def _http_error(error: WatchGateError) -> HTTPException:
    """Translate an engine error into an HTTP error with a structured body."""
    status_code = ERROR_STATUS.get(type(error), 400)
    return HTTPException(status_code=status_code, detail=error.to_dict())


# ============================================================================
# Health, config & metrics
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(store: Store = Depends(get_store)):
    """Health check endpoint."""
    try:
        await store.ping()
        store_status = "ok"
    except StoreUnavailable as e:
        logger.warning(f"Health check: {e.message}")
        store_status = "unavailable"
    status = "healthy" if store_status == "ok" else "degraded"
    return HealthResponse(status=status, version=__version__, store=store_status)


@router.get("/config", response_model=ConfigResponse)
async def get_config():
    """Get effective lease configuration."""
    return ConfigResponse(
        lease_ttl_seconds=settings.lease_ttl_seconds,
        selection_policy=settings.selection_policy.value,
        watchman_capacity=settings.watchman_capacity,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        require_known_order=settings.require_known_order,
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """In-process metrics snapshot."""
    return MetricsResponse(**metrics.snapshot())


# ============================================================================
# Dispatch & confirmation
# ============================================================================


@router.post("/assignments", response_model=Lease, status_code=201)
async def assign_order(
    request: AssignRequest,
    store: Store = Depends(get_store),
):
    """Assign a completed order to a watchman."""
    try:
        return await store.run(lambda session: WatchGateEngine(session).assign(request.order_ref))
    except WatchGateError as e:
        raise _http_error(e)


@router.post("/assignments/{order_ref}/confirm", response_model=ConfirmResponse)
async def confirm_order(
    order_ref: str,
    request: ConfirmRequest,
    store: Store = Depends(get_store),
):
    """Watchman confirms verification of an order."""
    watchman_id = check_watchman_id(request.watchman_id)
    try:
        completion_seconds = await store.run(
            lambda session: WatchGateEngine(session).confirm(
                order_ref, watchman_id, request.watchman_name
            )
        )
    except WatchGateError as e:
        raise _http_error(e)
    return ConfirmResponse(completion_seconds=completion_seconds)


@router.post("/sweep", response_model=SweepResponse)
async def trigger_sweep(store: Store = Depends(get_store)):
    """Run an expiry sweep now, outside the timer."""
    try:
        expired = await store.run(lambda session: WatchGateEngine(session).sweep())
    except WatchGateError as e:
        raise _http_error(e)
    return SweepResponse(expired=expired)


# ============================================================================
# Watchmen
# ============================================================================


@router.get("/watchmen/{watchman_id}/stats", response_model=StatsResponse)
async def watchman_stats(
    watchman_id: int = Depends(get_watchman_id),
    store: Store = Depends(get_store),
):
    """Counters, pending count and efficiency for one watchman."""
    try:
        stats = await store.run(lambda session: ReportingService(session).stats_for(watchman_id))
    except WatchGateError as e:
        raise _http_error(e)
    return StatsResponse(stats=stats)


@router.get("/watchmen/{watchman_id}/pending", response_model=LeaseListResponse)
async def watchman_pending(
    watchman_id: int = Depends(get_watchman_id),
    limit: Optional[int] = Query(None, ge=1, le=50),
    store: Store = Depends(get_store),
):
    """Orders currently waiting on this watchman."""
    try:
        leases = await store.run(
            lambda session: ReportingService(session).pending_for(watchman_id, limit)
        )
    except WatchGateError as e:
        raise _http_error(e)
    return LeaseListResponse(leases=leases)


@router.get("/watchmen/{watchman_id}/worklog", response_model=LeaseListResponse)
async def watchman_worklog(
    watchman_id: int = Depends(get_watchman_id),
    limit: Optional[int] = Query(None, ge=1, le=100),
    store: Store = Depends(get_store),
):
    """Today's confirmations by this watchman."""
    try:
        leases = await store.run(
            lambda session: ReportingService(session).worklog(watchman_id, limit)
        )
    except WatchGateError as e:
        raise _http_error(e)
    return LeaseListResponse(leases=leases)


@router.get("/report", response_model=ReportResponse)
async def performance_report(store: Store = Depends(get_store)):
    """Performance report across all active watchmen."""
    try:
        report = await store.run(lambda session: ReportingService(session).report())
    except WatchGateError as e:
        raise _http_error(e)
    return ReportResponse(report=report)


# ============================================================================
# Orders
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    limit: Optional[int] = Query(None, ge=1, le=200),
    store: Store = Depends(get_store),
):
    """Recent orders with their verification state."""
    try:
        orders = await store.run(lambda session: ReportingService(session).recent_orders(limit))
    except WatchGateError as e:
        raise _http_error(e)
    return OrderListResponse(orders=orders)


@router.get("/orders/{order_ref}", response_model=OrderDetail)
async def get_order(order_ref: str, store: Store = Depends(get_store)):
    """One order with its verification state."""
    try:
        return await store.run(lambda session: ReportingService(session).order_detail(order_ref))
    except WatchGateError as e:
        raise _http_error(e)


@router.get("/orders/{order_ref}/leases", response_model=LeaseListResponse)
async def get_order_leases(order_ref: str, store: Store = Depends(get_store)):
    """Reassignment chain for an order, oldest lease first."""
    try:
        leases = await store.run(lambda session: ReportingService(session).lease_chain(order_ref))
    except WatchGateError as e:
        raise _http_error(e)
    return LeaseListResponse(leases=leases)
