"""
Custom exception classes for the application.

Services raise these; routes turn them into the standard error response
with handle_error(). Capacity and availability errors always carry the
numbers a client needs to offer a smaller request.
"""

from typing import Optional, Any
from datetime import date, datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PERIOD_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
        retryable: Whether the caller may retry the same request unchanged
    """

    retryable = False

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class AuthenticationError(AppError):
    """Missing or invalid credentials (401)."""

    def __init__(self, message: str = "Authentication required", code: str = "UNAUTHORIZED"):
        super().__init__(
            code=code,
            message=message,
            status_code=401
        )


class ForbiddenError(AppError):
    """Actor does not own the resource (403)."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            code=f"{resource.upper()}_FORBIDDEN",
            message=f"Not allowed to access this {resource.lower()}",
            status_code=403,
            details={"id": identifier}
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


class TransactionFailure(DatabaseError):
    """Multi-write operation failed and was rolled back (503, retryable)."""

    retryable = True

    def __init__(self, operation: str, message: str):
        super().__init__(operation=operation, message=message)
        self.code = "TRANSACTION_FAILED"
        self.status_code = 503


# ===================
# PERIOD ERRORS
# ===================

class PeriodNotFoundError(NotFoundError):
    """Allocation period not found."""

    def __init__(self, period_id: str):
        super().__init__(
            resource="Period",
            identifier=str(period_id),
            code="PERIOD_NOT_FOUND"
        )


class NoCurrentPeriodError(NotFoundError):
    """No period covers today."""

    def __init__(self, today: date):
        super().__init__(
            resource="Current period",
            identifier=today.isoformat(),
            code="NO_CURRENT_PERIOD"
        )


# ===================
# DEMAND (ORDER) ERRORS
# ===================

class DemandNotFoundError(NotFoundError):
    """Order not found."""

    def __init__(self, order_id: str):
        super().__init__(
            resource="Order",
            identifier=str(order_id),
            code="ORDER_NOT_FOUND"
        )


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive multiple of the bundle size."""

    def __init__(self, quantity: Any, bundle_size: int = 10, maximum: Optional[int] = None):
        message = f"Quantity must be a positive multiple of {bundle_size}"
        if maximum is not None:
            message += f" and at most {maximum}"
        super().__init__(
            code="INVALID_QUANTITY",
            message=message,
            details={"provided": quantity, "bundle_size": bundle_size, "maximum": maximum}
        )


class InvalidPeriodCountError(ValidationError):
    """Subscription period count outside configured bounds."""

    def __init__(self, period_count: int, minimum: int, maximum: int):
        super().__init__(
            code="INVALID_PERIOD_COUNT",
            message=f"Subscription must run between {minimum} and {maximum} periods",
            details={"provided": period_count, "minimum": minimum, "maximum": maximum}
        )


class InvalidStatusTransitionError(ConflictError):
    """Invalid order status transition."""

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": "Status can only move forward, and completed is terminal"
            }
        )


# ===================
# CAPACITY / AVAILABILITY ERRORS
# ===================

class CapacityError(AppError):
    """
    A configured ceiling blocks the request (409).

    details.remaining is how much could still be granted.
    """

    def __init__(
        self,
        remaining: int,
        requested: int,
        code: str = "SUBSCRIPTION_CAPACITY_PARTIAL",
        message: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.remaining = remaining
        self.requested = requested
        if message is None:
            if remaining <= 0:
                code = "SUBSCRIPTION_CAPACITY_FULL"
                message = "Subscription limit has been reached"
            else:
                message = f"Only {remaining} units available for new subscriptions"
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details={"remaining": remaining, "requested": requested, **(details or {})}
        )


class LowSeasonCapError(CapacityError):
    """One-time order above the low-season per-order cap."""

    def __init__(self, cap: int, requested: int):
        super().__init__(
            remaining=cap,
            requested=requested,
            code="LOW_SEASON_CAP",
            message=f"During low season, one-time orders are limited to {cap} units",
            details={"max_allowed": cap, "is_low_season": True}
        )


class AvailabilityError(AppError):
    """Not enough stock left in the period (409)."""

    def __init__(
        self,
        available: int,
        requested: int,
        next_period_start: Optional[date] = None,
        next_period_end: Optional[date] = None
    ):
        self.available = available
        self.requested = requested
        details = {
            "available": available,
            "requested": requested,
            "deficit": max(0, requested - available),
        }
        if next_period_start is not None:
            details["next_period_start"] = next_period_start.isoformat()
        if next_period_end is not None:
            details["next_period_end"] = next_period_end.isoformat()
        super().__init__(
            code="INSUFFICIENT_STOCK",
            message=f"Only {available} units left for this period",
            status_code=409,
            details=details
        )


# ===================
# STATE CONFLICTS
# ===================

class StateConflictError(ConflictError):
    """Operation not allowed in the resource's current state."""

    def __init__(
        self,
        message: str,
        code: str = "STATE_CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(message=message, code=code, details=details)


class OrderingClosedError(StateConflictError):
    """Ordering is closed or the period was already delivered."""

    def __init__(self, period_id: str, reason: str = "ordering_closed"):
        super().__init__(
            code="ORDERING_CLOSED",
            message="Ordering is closed for this period",
            details={"period_id": str(period_id), "reason": reason}
        )


class DuplicateDemandError(StateConflictError):
    """Actor already has a pending one-time order in the period."""

    def __init__(self, order_id: str):
        super().__init__(
            code="ORDER_EXISTS",
            message="You already have a pending order for this period. Update it instead.",
            details={"existing_order_id": str(order_id)}
        )


class LowSeasonSubscriptionsClosedError(StateConflictError):
    """New subscriptions are not accepted during low season."""

    def __init__(self):
        super().__init__(
            code="LOW_SEASON",
            message="New subscriptions are not accepted during low season",
            details={"is_low_season": True}
        )


class SubscriptionNotFoundError(NotFoundError):
    """Subscription not found."""

    def __init__(self, subscription_id: str):
        super().__init__(
            resource="Subscription",
            identifier=str(subscription_id),
            code="SUBSCRIPTION_NOT_FOUND"
        )


# ===================
# NOTIFICATION ERRORS
# ===================

class TelegramError(ExternalServiceError):
    """Telegram API error."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(service="telegram", message=message, details=details)


class PushDeliveryError(ExternalServiceError):
    """Push provider rejected a batch."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(service="expo_push", message=message, details=details)
