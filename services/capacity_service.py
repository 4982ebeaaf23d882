"""
Capacity service: global subscription ceilings and low-season order caps.

The ceilings come from the app_settings row (re-read per operation); the
low-season step function comes from config.Settings so operators can tune
it per deployment.
"""

from dataclasses import dataclass
from typing import Optional
import structlog

from config import get_supabase_client
from config.settings import settings
from models.allocation import CapacityDecision, CapacityVerdict
from models.period import AllocationPeriod
from models.settings import GlobalSettings
from models.subscription import SubscriptionStatus, SubscriptionAvailability
from exceptions import CapacityError, DatabaseError, NoCurrentPeriodError
from services.settings_service import get_settings_service

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LowSeasonPolicy:
    """Per-order cap for one-time orders while a period is in low season."""
    stock_threshold: int
    small_cap: int
    large_cap: int

    @classmethod
    def from_settings(cls) -> "LowSeasonPolicy":
        return cls(
            stock_threshold=settings.low_season_stock_threshold,
            small_cap=settings.low_season_small_cap,
            large_cap=settings.low_season_large_cap,
        )


def low_season_order_cap(period: AllocationPeriod, policy: LowSeasonPolicy) -> Optional[int]:
    """
    Cap on a single one-time order in this period.

    Returns None outside low season. In low season the cap is the small
    one when the period's stock is under the threshold, else the large one.
    """
    if not period.is_low_season:
        return None
    if period.available_stock < policy.stock_threshold:
        return policy.small_cap
    return policy.large_cap


def check_subscription_capacity(
    requested: int,
    global_settings: GlobalSettings,
    active_total: int
) -> CapacityDecision:
    """
    Check a subscription request against the aggregate ceiling.

    Args:
        requested: Quantity of the new subscription
        global_settings: Settings fetched for this operation
        active_total: Sum of quantities over active subscriptions

    Returns:
        CapacityDecision (remaining can be negative if the ceiling was lowered)
    """
    remaining = global_settings.max_subscription_quantity - active_total

    if remaining <= 0:
        verdict = CapacityVerdict.DENIED_FULL
    elif requested > remaining:
        verdict = CapacityVerdict.DENIED_PARTIAL
    else:
        verdict = CapacityVerdict.ALLOWED

    return CapacityDecision(verdict=verdict, remaining=remaining, requested=requested)


class CapacityService:
    """
    Capacity business logic.

    Reads active subscription totals and enforces the configured ceilings.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "subscriptions"

    def get_active_total(self) -> int:
        """Sum of quantities over all active subscriptions."""
        try:
            result = (
                self.db.table(self.table)
                .select("quantity")
                .eq("status", SubscriptionStatus.ACTIVE.value)
                .execute()
            )
            return sum(row["quantity"] for row in result.data or [])

        except Exception as e:
            logger.error("active_subscription_total_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def enforce_subscription_capacity(
        self,
        quantity: int,
        global_settings: Optional[GlobalSettings] = None
    ) -> CapacityDecision:
        """
        Raise unless a subscription of quantity fits under the ceiling.

        Args:
            quantity: Requested subscription quantity
            global_settings: Settings already fetched for this operation

        Raises:
            CapacityError: Full (no capacity left) or partial (remaining given)
        """
        if global_settings is None:
            global_settings = get_settings_service().get_global_settings()
        decision = check_subscription_capacity(quantity, global_settings, self.get_active_total())

        if not decision.allowed:
            logger.info(
                "subscription_capacity_denied",
                verdict=decision.verdict.value,
                remaining=decision.remaining,
                requested=quantity
            )
            raise CapacityError(remaining=max(0, decision.remaining), requested=quantity)

        return decision

    def subscription_availability(self) -> SubscriptionAvailability:
        """
        Whether a new subscription can be created right now, and how large.

        Combines the low-season rule, the aggregate ceiling and the
        per-subscription ceiling into one answer for the client.
        """
        from services.period_service import get_period_service

        global_settings = get_settings_service().get_global_settings()
        current_total = self.get_active_total()
        remaining = max(0, global_settings.max_subscription_quantity - current_total)
        max_allowed = min(remaining, global_settings.max_per_subscription)

        try:
            period = get_period_service().get_current()
        except NoCurrentPeriodError:
            period = None

        reason = None
        if period is None:
            reason = "no_current_period"
        elif period.is_low_season:
            reason = "low_season"
        elif remaining <= 0:
            reason = "capacity_full"

        return SubscriptionAvailability(
            can_subscribe=reason is None,
            reason=reason,
            max_allowed=max_allowed if reason is None else 0,
            remaining_capacity=remaining,
            current_total=current_total,
            max_per_subscription=global_settings.max_per_subscription,
            is_low_season=bool(period and period.is_low_season),
        )


# Singleton instance
_capacity_service: Optional[CapacityService] = None


def get_capacity_service() -> CapacityService:
    """Get or create CapacityService instance."""
    global _capacity_service
    if _capacity_service is None:
        _capacity_service = CapacityService()
    return _capacity_service
