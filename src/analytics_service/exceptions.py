"""Domain exceptions for the analytics service.

Each exception carries the HTTP status code the API reports for it, so
services can raise them without knowing about the transport.
"""

from typing import Any


class AnalyticsServiceError(Exception):
    """Base exception for analytics service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class InvalidInputError(AnalyticsServiceError):
    """Raised when a request is rejected before touching any store."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=400, details=details)


class SummaryNotFoundError(AnalyticsServiceError):
    """Raised when a customer has no analytics summary yet."""

    def __init__(self, customer_id: str):
        super().__init__(
            message=f"Customer analytics not found for '{customer_id}'",
            status_code=404,
            details={"customer_id": customer_id},
        )


class SummaryConflictError(AnalyticsServiceError):
    """Raised when a summary write loses an optimistic-concurrency race."""

    def __init__(self, customer_id: str, expected_version: int, actual_version: int):
        super().__init__(
            message=(
                f"Summary for '{customer_id}' changed concurrently "
                f"(expected version {expected_version}, found {actual_version})"
            ),
            status_code=409,
            details={
                "customer_id": customer_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class DependencyUnavailableError(AnalyticsServiceError):
    """Raised when a backing store cannot be reached on a write path."""

    def __init__(self, dependency: str, error: Exception):
        super().__init__(
            message=f"{dependency} is unavailable: {error}",
            status_code=503,
            details={
                "dependency": dependency,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
