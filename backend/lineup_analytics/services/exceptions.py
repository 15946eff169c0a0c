# backend/lineup_analytics/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.

Degenerate numeric input never raises: the metrics calculator answers with
zero values instead. Exceptions are reserved for lifecycle misuse and for
infrastructure failures that a caller has to decide about.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── AnalyticsError
    │   └── InsufficientDataError
    ├── CacheError
    ├── DataStoreError
    └── WorkerError
        ├── WorkerAlreadyRunningError
        ├── WorkerNotRunningError
        └── WorkerStopTimeoutError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when circuit breaker is open and blocking requests
"""

from lineup_analytics.services.circuit_breaker import CircuitBreakerOpen


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a programmatic argument is invalid (bad TTL, bad interval).

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# ANALYTICS ERRORS
# =============================================================================


class AnalyticsError(ServiceError):
    """Base exception for analytics computation failures."""
    pass


class InsufficientDataError(AnalyticsError):
    """
    Raised when an operation cannot produce a meaningful answer from the
    samples it was given (e.g. optimizing a portfolio of one lineup).

    Attributes:
        required: Minimum number of observations needed
        available: Number of observations supplied
    """

    def __init__(self, what: str, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {what}: need {required}, got {available}"
        )


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================


class CacheError(ServiceError):
    """
    Raised for analytics cache failures that cannot degrade to a miss,
    such as marshaling a value that is not JSON-serializable.

    Attributes:
        key: Cache key involved (optional)
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class DataStoreError(ServiceError):
    """
    Raised when the lineup data store fails.

    Attributes:
        operation: Name of the data store operation that failed
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Data store operation '{operation}' failed: {reason}")


# =============================================================================
# WORKER LIFECYCLE ERRORS
# =============================================================================


class WorkerError(ServiceError):
    """Base exception for analytics worker lifecycle errors."""
    pass


class WorkerAlreadyRunningError(WorkerError):
    """Raised when start() is called on a running worker."""

    def __init__(self) -> None:
        super().__init__("analytics worker is already running")


class WorkerNotRunningError(WorkerError):
    """Raised when stop() is called on a worker that is not running."""

    def __init__(self) -> None:
        super().__init__("analytics worker is not running")


class WorkerStopTimeoutError(WorkerError):
    """
    Raised when task threads do not exit within the stop timeout.

    Attributes:
        tasks: Names of the tasks still running
    """

    def __init__(self, tasks: list[str], timeout: float) -> None:
        self.tasks = tasks
        self.timeout = timeout
        super().__init__(
            f"analytics worker tasks did not stop within {timeout:.1f}s: {', '.join(tasks)}"
        )


__all__ = [
    "ServiceError",
    "ValidationError",
    "AnalyticsError",
    "InsufficientDataError",
    "CacheError",
    "DataStoreError",
    "WorkerError",
    "WorkerAlreadyRunningError",
    "WorkerNotRunningError",
    "WorkerStopTimeoutError",
    "CircuitBreakerOpen",
]
