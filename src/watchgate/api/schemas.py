"""API request/response schemas."""

from typing import Any

from pydantic import BaseModel, Field

from watchgate.models import Lease, OrderDetail, WatchmanReport, WorkerStatSnapshot


# ============================================================================
# Health & config
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    store: str


class ConfigResponse(BaseModel):
    """Effective lease configuration."""

    lease_ttl_seconds: int
    selection_policy: str
    watchman_capacity: int
    sweep_interval_seconds: int
    require_known_order: bool


class MetricsResponse(BaseModel):
    counters: dict[str, int]
    histograms: dict[str, dict[str, Any]]


# ============================================================================
# Dispatch & confirmation
# ============================================================================


class AssignRequest(BaseModel):
    """Assign a completed order for verification."""

    order_ref: str = Field(..., min_length=1, max_length=255, description="Order reference")


class ConfirmRequest(BaseModel):
    """Watchman confirms an order."""

    watchman_id: int = Field(..., ge=1, description="Watchman slot id")
    watchman_name: str = Field(..., min_length=1, description="Name the watchman logged in with")


class ConfirmResponse(BaseModel):
    completion_seconds: int


class SweepResponse(BaseModel):
    expired: int


# ============================================================================
# Reporting
# ============================================================================


class LeaseListResponse(BaseModel):
    leases: list[Lease]


class StatsResponse(BaseModel):
    stats: WorkerStatSnapshot


class ReportResponse(BaseModel):
    report: list[WatchmanReport]


class OrderListResponse(BaseModel):
    orders: list[OrderDetail]


