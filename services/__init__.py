"""
Business logic services.

Each service handles one domain area.
"""

from services.settings_service import SettingsService, get_settings_service
from services.notification_service import (
    Notifier,
    ChannelSender,
    ExpoPushChannel,
    get_notifier,
)
from services.capacity_service import (
    CapacityService,
    get_capacity_service,
    LowSeasonPolicy,
    low_season_order_cap,
    check_subscription_capacity,
)
from services.period_service import PeriodService, get_period_service
from services.availability_service import (
    AvailabilityService,
    get_availability_service,
    available_for,
)
from services.cycle_service import CycleService, get_cycle_service, period_bounds
from services.materialization_service import (
    MaterializationService,
    get_materialization_service,
    fair_trim,
)
from services.demand_service import DemandService, get_demand_service
from services.fulfillment_service import FulfillmentService, get_fulfillment_service
from services.subscription_service import SubscriptionService, get_subscription_service

__all__ = [
    "SettingsService",
    "get_settings_service",
    "Notifier",
    "ChannelSender",
    "ExpoPushChannel",
    "get_notifier",
    "CapacityService",
    "get_capacity_service",
    "LowSeasonPolicy",
    "low_season_order_cap",
    "check_subscription_capacity",
    "PeriodService",
    "get_period_service",
    "AvailabilityService",
    "get_availability_service",
    "available_for",
    "CycleService",
    "get_cycle_service",
    "period_bounds",
    "MaterializationService",
    "get_materialization_service",
    "fair_trim",
    "DemandService",
    "get_demand_service",
    "FulfillmentService",
    "get_fulfillment_service",
    "SubscriptionService",
    "get_subscription_service",
]
