"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
    BUNDLE_SIZE,
    is_bundle_quantity,
)
from models.period import (
    AllocationPeriod,
    PeriodStockDeclaration,
    AvailabilityResponse,
)
from models.demand import (
    DemandStatus,
    STATUS_ORDER,
    is_valid_status_transition,
    resolve_status,
    compute_total,
    DemandRecord,
    DemandCreate,
    DemandUpdate,
    DemandListResponse,
    DeliveryConfirmation,
)
from models.subscription import (
    SubscriptionStatus,
    RecurringDemand,
    SubscriptionCreate,
    SubscriptionAvailability,
)
from models.settings import (
    GlobalSettings,
    GlobalSettingsUpdate,
    DefaultPriceUpdate,
    DefaultPriceResult,
)
from models.allocation import (
    CapacityVerdict,
    CapacityDecision,
    TrimCandidate,
    TrimOutcome,
    TrimRecord,
    MaterializationSummary,
    PreviewSubscription,
    PreviewResult,
    DeclareStockResponse,
)
from models.notification import (
    NotificationChannel,
    NotificationMessage,
    DispatchResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "BUNDLE_SIZE",
    "is_bundle_quantity",

    # Period
    "AllocationPeriod",
    "PeriodStockDeclaration",
    "AvailabilityResponse",

    # Demand
    "DemandStatus",
    "STATUS_ORDER",
    "is_valid_status_transition",
    "resolve_status",
    "compute_total",
    "DemandRecord",
    "DemandCreate",
    "DemandUpdate",
    "DemandListResponse",
    "DeliveryConfirmation",

    # Subscription
    "SubscriptionStatus",
    "RecurringDemand",
    "SubscriptionCreate",
    "SubscriptionAvailability",

    # Settings
    "GlobalSettings",
    "GlobalSettingsUpdate",
    "DefaultPriceUpdate",
    "DefaultPriceResult",

    # Allocation
    "CapacityVerdict",
    "CapacityDecision",
    "TrimCandidate",
    "TrimOutcome",
    "TrimRecord",
    "MaterializationSummary",
    "PreviewSubscription",
    "PreviewResult",
    "DeclareStockResponse",

    # Notifications
    "NotificationChannel",
    "NotificationMessage",
    "DispatchResult",
]
