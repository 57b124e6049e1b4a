# ================================
# CUSTOM EXCEPTIONS
# ================================

from typing import Optional


class AppException(Exception):
    """Base exception for application-specific errors"""

    def __init__(self, detail: str, status_code: int = 400, error_code: Optional[str] = None):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(detail)


class FeedUnavailable(AppException):
    """The external order feed could not be reached or refused the request"""

    def __init__(
        self,
        detail: str = "Order feed unavailable",
        retryable: bool = True,
        http_status: Optional[int] = None,
    ):
        self.retryable = retryable
        self.http_status = http_status
        super().__init__(detail, 502, "FEED_UNAVAILABLE")


class RecordRejected(AppException):
    """A single order payload could not be parsed or stored"""

    def __init__(self, detail: str, order_id=None):
        self.order_id = order_id
        super().__init__(detail, 422, "RECORD_REJECTED")


class AggregateRebuildFailed(AppException):
    """Storage failure while swapping in a new daily occupancy table"""

    def __init__(self, detail: str = "Daily occupancy rebuild failed"):
        super().__init__(detail, 500, "AGGREGATE_REBUILD_FAILED")


class InvalidRangeQuery(AppException):
    """Missing or malformed date bounds on an occupancy query"""

    def __init__(self, detail: str):
        super().__init__(detail, 400, "INVALID_RANGE_QUERY")


class SyncAlreadyRunning(AppException):
    """Another reconciliation holds the run lock"""

    def __init__(self, detail: str = "A sync is already in progress"):
        super().__init__(detail, 409, "SYNC_ALREADY_RUNNING")


class OrderNotFound(AppException):
    def __init__(self, external_id: int):
        super().__init__(f"Order {external_id} not found", 404, "ORDER_NOT_FOUND")


class OrderAlreadyExists(AppException):
    def __init__(self, external_id: int):
        super().__init__(f"Order {external_id} already exists", 409, "ORDER_EXISTS")
