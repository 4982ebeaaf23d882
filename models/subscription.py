"""
Recurring demand (subscription) schemas.
"""

from pydantic import Field, field_validator
from typing import Optional
from enum import Enum
from datetime import date

from models.base import BaseSchema, TimestampMixin, BUNDLE_SIZE, is_bundle_quantity


class SubscriptionStatus(str, Enum):
    """Subscription status values."""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RecurringDemand(BaseSchema, TimestampMixin):
    """
    Standing instruction to place the same order for several periods.

    weeks_remaining counts the periods still to be materialized.
    """

    id: str = Field(..., description="Subscription UUID")
    user_id: str = Field(..., description="Owning actor")
    quantity: int = Field(..., gt=0, description="Units per period")
    period: int = Field(..., ge=1, description="Total number of periods")
    weeks_remaining: int = Field(..., ge=0)
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    next_delivery: Optional[date] = Field(None, description="Start of the next period served")


class SubscriptionCreate(BaseSchema):
    """
    Create a subscription.

    start_now also places an order in the current period.
    """

    quantity: int = Field(..., gt=0, description="Units per period, multiple of 10")
    period_count: int = Field(..., ge=1, description="Number of periods")
    start_now: bool = Field(default=False)

    @field_validator("quantity")
    @classmethod
    def whole_bundles(cls, v: int) -> int:
        if not is_bundle_quantity(v):
            raise ValueError(f"Quantity must be a positive multiple of {BUNDLE_SIZE}")
        return v


class SubscriptionAvailability(BaseSchema):
    """Whether a new subscription can be created right now, and how large."""

    can_subscribe: bool
    reason: Optional[str] = Field(None, description="low_season | capacity_full | no_current_period")
    max_allowed: int = Field(..., ge=0, description="Largest quantity accepted now")
    remaining_capacity: int = Field(..., ge=0)
    current_total: int = Field(..., ge=0, description="Sum of active subscription quantities")
    max_per_subscription: int
    is_low_season: bool = False
