"""
Allocation period (week) schemas.

A period holds the stock figure and price for one ordering window.
"""

from pydantic import Field, field_validator
from typing import Optional
from datetime import date, datetime
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin, BUNDLE_SIZE, is_bundle_quantity


class AllocationPeriod(BaseSchema, TimestampMixin):
    """
    Allocation period as stored in the weeks table.

    Stock and price are set once by an operator; the flags track the
    period's lifecycle (ordering open, subscriptions materialized, delivered).
    """

    id: str = Field(..., description="Period UUID")
    week_start: date = Field(..., description="First day of the period")
    week_end: date = Field(..., description="Last day of the period (inclusive)")
    available_stock: int = Field(default=0, ge=0, description="Total stock in items")
    unit_price: Decimal = Field(..., ge=0, description="Price per bundle of 10")
    is_ordering_open: bool = Field(default=False)
    is_low_season: bool = Field(default=False)
    subscriptions_processed: bool = Field(
        default=False,
        description="Subscriptions materialized for this period (one-shot)"
    )
    delivery_date: Optional[datetime] = Field(None, description="Scheduled delivery")
    delivery_time: Optional[str] = Field(None, description="Delivery time window, free text")
    all_orders_delivered: bool = Field(default=False)

    # Filled in by PeriodService for responses
    low_season_order_cap: Optional[int] = Field(
        None,
        description="Per-order cap for one-time orders (low season only)"
    )

    def covers(self, day: date) -> bool:
        """Check if day falls inside this period."""
        return self.week_start <= day <= self.week_end


class PeriodStockDeclaration(BaseSchema):
    """
    Operator input for declaring a period's stock.

    Only available_stock is required; the other fields are applied when given.
    """

    available_stock: int = Field(
        ...,
        ge=0,
        description="Stock for the period, in items (multiple of 10)"
    )
    unit_price: Optional[Decimal] = Field(
        None,
        ge=0,
        le=Decimal("999999.99"),
        description="Price per bundle; keeps the period's price when omitted"
    )
    delivery_date: Optional[datetime] = Field(None, description="Scheduled delivery")
    delivery_time: Optional[str] = Field(None, max_length=255)
    is_low_season: Optional[bool] = Field(None, description="Toggle low-season policy")

    @field_validator("available_stock")
    @classmethod
    def whole_bundles(cls, v: int) -> int:
        """Stock is tracked in bundles of 10."""
        if not is_bundle_quantity(v, allow_zero=True):
            raise ValueError(f"Stock must be a multiple of {BUNDLE_SIZE}")
        return v

    @field_validator("unit_price")
    @classmethod
    def round_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """Round to 2 decimal places."""
        if v is None:
            return v
        return round(v, 2)


class AvailabilityResponse(BaseSchema):
    """Remaining stock for a period, optionally from one actor's viewpoint."""

    period_id: str
    actor_id: Optional[str] = None
    available: int = Field(..., ge=0)
