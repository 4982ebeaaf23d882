"""
Demand record (order) schemas and the fulfillment state machine.

Records move pending -> delivered -> completed. Payment and pickup are
independent flags; a record completes once it is delivered, paid and
picked up.
"""

from pydantic import Field, field_validator
from typing import Optional, Union
from enum import Enum
from decimal import Decimal, ROUND_HALF_UP

from models.base import BaseSchema, TimestampMixin, BUNDLE_SIZE, is_bundle_quantity
from models.period import AllocationPeriod


class DemandStatus(str, Enum):
    """Order status values."""
    PENDING = "pending"
    DELIVERED = "delivered"
    COMPLETED = "completed"


# Status order for transition validation (lower index = earlier in flow)
STATUS_ORDER = {
    DemandStatus.PENDING: 0,
    DemandStatus.DELIVERED: 1,
    DemandStatus.COMPLETED: 2,
}


def is_valid_status_transition(current: DemandStatus, new: DemandStatus) -> bool:
    """
    Check if order status transition is valid.

    Rules:
    - Can skip forward (pending → completed is OK)
    - Cannot go backward (delivered → pending is NOT OK)
    - COMPLETED is terminal (cannot transition from COMPLETED)
    """
    if current == DemandStatus.COMPLETED:
        return False  # Terminal state

    return STATUS_ORDER[new] > STATUS_ORDER[current]


def compute_total(quantity: int, unit_price: Union[Decimal, float, str]) -> Decimal:
    """
    Price of an order: quantity / 10 bundles at unit_price each.

    Rounded half-up to cents.
    """
    price = unit_price if isinstance(unit_price, Decimal) else Decimal(str(unit_price))
    total = Decimal(quantity) / Decimal(BUNDLE_SIZE) * price
    return total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ===================
# DEMAND SCHEMAS
# ===================

class DemandRecord(BaseSchema, TimestampMixin):
    """
    One actor's committed claim on a period's stock.

    Created either directly (one-time order) or by materializing a
    subscription, in which case subscription_id is set.
    """

    id: str = Field(..., description="Order UUID")
    user_id: str = Field(..., description="Owning actor")
    week_id: str = Field(..., description="Period UUID")
    subscription_id: Optional[str] = Field(None, description="Spawning subscription, if any")
    quantity: int = Field(..., gt=0)
    total: Decimal = Field(..., ge=0)
    status: DemandStatus = Field(default=DemandStatus.PENDING)
    is_paid: bool = Field(default=False)
    payment_submitted: bool = Field(default=False)
    picked_up: bool = Field(default=False)

    @property
    def is_delivered(self) -> bool:
        """Delivered is derived from status; completed records were delivered too."""
        return self.status in (DemandStatus.DELIVERED, DemandStatus.COMPLETED)

    @property
    def is_owner_mutable(self) -> bool:
        """Owners may edit or cancel only pending, unpaid one-time orders."""
        return (
            self.status == DemandStatus.PENDING
            and not self.is_paid
            and self.subscription_id is None
        )


def resolve_status(record: DemandRecord) -> DemandStatus:
    """
    Status a record should hold given its flags.

    Returns COMPLETED when delivered, paid and picked up; otherwise the
    current status. Never moves a record backward.
    """
    if record.status == DemandStatus.COMPLETED:
        return DemandStatus.COMPLETED
    if record.is_delivered and record.is_paid and record.picked_up:
        return DemandStatus.COMPLETED
    return record.status


class DemandCreate(BaseSchema):
    """
    Place a one-time order.

    period_id defaults to the current period when omitted.
    """

    quantity: int = Field(..., gt=0, description="Units, positive multiple of 10")
    period_id: Optional[str] = Field(None, description="Target period (default: current)")

    @field_validator("quantity")
    @classmethod
    def whole_bundles(cls, v: int) -> int:
        """Orders are placed in bundles of 10."""
        if not is_bundle_quantity(v):
            raise ValueError(f"Quantity must be a positive multiple of {BUNDLE_SIZE}")
        return v


class DemandUpdate(BaseSchema):
    """Change the quantity of an existing one-time order."""

    quantity: int = Field(..., gt=0, description="New quantity, positive multiple of 10")

    @field_validator("quantity")
    @classmethod
    def whole_bundles(cls, v: int) -> int:
        if not is_bundle_quantity(v):
            raise ValueError(f"Quantity must be a positive multiple of {BUNDLE_SIZE}")
        return v


class DemandListResponse(BaseSchema):
    """List of orders."""

    data: list[DemandRecord]
    total: int


class DeliveryConfirmation(BaseSchema):
    """Outcome of marking a period's orders delivered."""

    period: AllocationPeriod
    records_delivered: int = 0
    records_completed: int = Field(0, description="Already paid and picked up, so completed at once")
    already_delivered: bool = False
