"""
Allocation schemas: capacity decisions, subscription trims,
materialization summaries and previews.
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema
from models.period import AllocationPeriod


class CapacityVerdict(str, Enum):
    """Outcome of a subscription capacity check."""
    ALLOWED = "allowed"
    DENIED_FULL = "denied_full"
    DENIED_PARTIAL = "denied_partial"


class CapacityDecision(BaseSchema):
    """Capacity check result. remaining may be negative if settings were lowered."""

    verdict: CapacityVerdict
    remaining: int
    requested: int

    @property
    def allowed(self) -> bool:
        return self.verdict == CapacityVerdict.ALLOWED


# ===================
# TRIMMING
# ===================

class TrimCandidate(BaseSchema):
    """One subscription's claim on a period, before trimming."""

    subscription_id: str
    user_id: str
    quantity: int = Field(..., gt=0)


class TrimOutcome(BaseSchema):
    """Result of fair_trim over a list of candidates."""

    quantities: list[int] = Field(..., description="Final quantity per candidate, same order")
    reductions: int = Field(0, ge=0, description="Number of single-bundle reductions")
    residual_deficit: int = Field(0, ge=0, description="Units still over stock after trimming")


class TrimRecord(BaseSchema):
    """A subscription whose order was reduced this period."""

    subscription_id: str
    user_id: str
    order_id: Optional[str] = None
    original_quantity: int
    new_quantity: int


class MaterializationSummary(BaseSchema):
    """Outcome of materializing a period's subscriptions."""

    period_id: str
    records_created: int = 0
    trims_applied: int = Field(0, description="Number of orders reduced")
    total_quantity_committed: int = 0
    residual_deficit: int = 0
    already_processed: bool = False
    trims: list[TrimRecord] = Field(default_factory=list)


# ===================
# PREVIEW
# ===================

class PreviewSubscription(BaseSchema):
    """One subscription as it would be materialized."""

    subscription_id: str
    user_id: str
    quantity: int
    trimmed_quantity: int
    weeks_remaining: int


class PreviewResult(BaseSchema):
    """Read-only forecast of materialization against a candidate stock figure."""

    subscriber_count: int
    total_demand: int
    available_stock: int
    will_trim: bool
    deficit: int = Field(..., ge=0, description="Demand over stock before trimming")
    residual_deficit: int = Field(0, ge=0, description="Demand over stock after trimming")
    remaining_for_one_time_orders: int = Field(..., ge=0)
    subscriptions: list[PreviewSubscription] = Field(default_factory=list)


class DeclareStockResponse(BaseSchema):
    """Period after a stock declaration, with the materialization it triggered."""

    period: AllocationPeriod
    subscriptions: Optional[MaterializationSummary] = None
