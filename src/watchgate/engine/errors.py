"""WatchGate engine errors."""


class WatchGateError(Exception):
    """Base error for WatchGate operations."""

    def __init__(self, message: str, code: str = "WATCHGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class AlreadyAssigned(WatchGateError):
    """Order already has an assigned lease."""

    def __init__(self, order_ref: str, watchman_id: int | None = None):
        holder = f" (held by watchman {watchman_id})" if watchman_id is not None else ""
        super().__init__(f"Order {order_ref} is already assigned{holder}", "ALREADY_ASSIGNED")
        self.order_ref = order_ref
        self.watchman_id = watchman_id


class NoWorkersAvailable(WatchGateError):
    """No active watchman can take the order."""

    def __init__(self, order_ref: str, excluded_watchman_id: int | None = None):
        message = f"No active watchmen available for order {order_ref}"
        if excluded_watchman_id is not None:
            message += f" (excluding watchman {excluded_watchman_id})"
        super().__init__(message, "NO_WORKERS_AVAILABLE")
        self.order_ref = order_ref
        self.excluded_watchman_id = excluded_watchman_id


class WorkerNotFound(WatchGateError):
    """Watchman is unknown or not on duty."""

    def __init__(self, watchman_id: int):
        super().__init__(f"Watchman not found: {watchman_id}", "WORKER_NOT_FOUND")
        self.watchman_id = watchman_id


class IdentityMismatch(WatchGateError):
    """Claimed name does not belong to the claimed watchman id."""

    def __init__(self, watchman_id: int):
        super().__init__(
            f"Watchman verification failed for watchman {watchman_id}",
            "IDENTITY_MISMATCH",
        )
        self.watchman_id = watchman_id


class LeaseNotFound(WatchGateError):
    """No assigned lease for this order and watchman."""

    def __init__(self, order_ref: str, watchman_id: int):
        super().__init__(
            f"No assigned lease for order {order_ref} and watchman {watchman_id}",
            "LEASE_NOT_FOUND",
        )
        self.order_ref = order_ref
        self.watchman_id = watchman_id


class LeaseExpired(WatchGateError):
    """Confirmation arrived after the lease TTL."""

    def __init__(self, order_ref: str, watchman_id: int, elapsed_seconds: int):
        super().__init__(
            f"Lease for order {order_ref} expired after {elapsed_seconds}s",
            "LEASE_EXPIRED",
        )
        self.order_ref = order_ref
        self.watchman_id = watchman_id
        self.elapsed_seconds = elapsed_seconds


class OrderNotFound(WatchGateError):
    """Order is unknown to the order store."""

    def __init__(self, order_ref: str):
        super().__init__(f"Order not found: {order_ref}", "ORDER_NOT_FOUND")
        self.order_ref = order_ref


class InvalidWatchmanId(WatchGateError):
    """Watchman id outside the configured slots."""

    def __init__(self, watchman_id: int, capacity: int):
        super().__init__(
            f"Invalid watchman ID {watchman_id} (expected 1..{capacity})",
            "INVALID_WATCHMAN_ID",
        )
        self.watchman_id = watchman_id
        self.capacity = capacity


class StoreUnavailable(WatchGateError):
    """Store did not answer in time or dropped the connection."""

    def __init__(self, reason: str):
        super().__init__(f"Store unavailable: {reason}", "STORE_UNAVAILABLE")
        self.reason = reason
