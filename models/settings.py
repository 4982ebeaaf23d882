"""
Global settings schemas.

A single app_settings row holds the operator-tunable allocation knobs.
"""

from pydantic import Field, field_validator
from typing import Optional
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin, BUNDLE_SIZE


class GlobalSettings(BaseSchema, TimestampMixin):
    """
    Global allocation settings.

    Used for GET responses and read by services once per operation.
    """

    id: Optional[str] = Field(None, description="Settings row UUID")
    default_unit_price: Decimal = Field(..., ge=0, description="Price per bundle for new periods")
    max_subscription_quantity: int = Field(
        ...,
        ge=0,
        description="Aggregate ceiling across all active subscriptions"
    )
    max_per_subscription: int = Field(..., ge=BUNDLE_SIZE, description="Ceiling for one subscription")


class GlobalSettingsUpdate(BaseSchema):
    """
    Update global settings.

    All fields optional - only provided fields are updated.
    """

    max_subscription_quantity: Optional[int] = Field(None, ge=0)
    max_per_subscription: Optional[int] = Field(None, ge=BUNDLE_SIZE)

    @field_validator("max_subscription_quantity", "max_per_subscription")
    @classmethod
    def whole_bundles(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v % BUNDLE_SIZE != 0:
            raise ValueError(f"Must be a multiple of {BUNDLE_SIZE}")
        return v


class DefaultPriceUpdate(BaseSchema):
    """Change the default price; optionally apply it to current and future periods."""

    price: Decimal = Field(..., ge=0, le=Decimal("999999.99"))
    apply_to_current: bool = Field(
        default=True,
        description="Also reprice periods that have not ended, and their pending orders"
    )

    @field_validator("price")
    @classmethod
    def round_price(cls, v: Decimal) -> Decimal:
        """Round to 2 decimal places."""
        return round(v, 2)


class DefaultPriceResult(BaseSchema):
    """Outcome of a default price change."""

    settings: GlobalSettings
    periods_updated: int = 0
    orders_repriced: int = 0
