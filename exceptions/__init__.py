"""
Custom exceptions module.

Services raise these; routes convert them with handle_error().
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    ForbiddenError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,
    TransactionFailure,

    # Periods
    PeriodNotFoundError,
    NoCurrentPeriodError,

    # Orders
    DemandNotFoundError,
    InvalidQuantityError,
    InvalidStatusTransitionError,

    # Capacity / availability
    CapacityError,
    LowSeasonCapError,
    AvailabilityError,

    # State conflicts
    StateConflictError,
    OrderingClosedError,
    DuplicateDemandError,
    LowSeasonSubscriptionsClosedError,

    # Subscriptions
    SubscriptionNotFoundError,
    InvalidPeriodCountError,

    # Notifications
    TelegramError,
    PushDeliveryError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",
    "TransactionFailure",

    # Periods
    "PeriodNotFoundError",
    "NoCurrentPeriodError",

    # Orders
    "DemandNotFoundError",
    "InvalidQuantityError",
    "InvalidStatusTransitionError",

    # Capacity / availability
    "CapacityError",
    "LowSeasonCapError",
    "AvailabilityError",

    # State conflicts
    "StateConflictError",
    "OrderingClosedError",
    "DuplicateDemandError",
    "LowSeasonSubscriptionsClosedError",

    # Subscriptions
    "SubscriptionNotFoundError",
    "InvalidPeriodCountError",

    # Notifications
    "TelegramError",
    "PushDeliveryError",
]
