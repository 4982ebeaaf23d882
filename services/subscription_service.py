"""
Subscription service: create and cancel recurring demand.

An actor has at most one active subscription. Creating a new one cancels
the previous one and deletes its pending orders in the same transaction.
"""

from datetime import date
from typing import Optional
import structlog

from config import get_supabase_client, Transaction
from config.settings import settings
from models.base import is_bundle_quantity
from models.demand import DemandStatus, compute_total
from models.subscription import RecurringDemand, SubscriptionStatus
from exceptions import (
    DatabaseError,
    ForbiddenError,
    InvalidQuantityError,
    InvalidPeriodCountError,
    AvailabilityError,
    StateConflictError,
    LowSeasonSubscriptionsClosedError,
    SubscriptionNotFoundError,
)
from services.availability_service import get_availability_service
from services.capacity_service import get_capacity_service
from services.cycle_service import next_period_bounds
from services.period_service import get_period_service
from services.settings_service import get_settings_service

logger = structlog.get_logger(__name__)


class SubscriptionService:
    """
    Subscription business logic.

    Handles creation (with capacity and stock checks) and cancellation.
    Materialization into orders lives in MaterializationService.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "subscriptions"
        self.orders_table = "orders"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, subscription_id: str) -> RecurringDemand:
        """
        Get subscription by ID.

        Raises:
            SubscriptionNotFoundError: If subscription doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", subscription_id)
                .execute()
            )

            if not result.data:
                raise SubscriptionNotFoundError(subscription_id)

            return RecurringDemand(**result.data[0])

        except SubscriptionNotFoundError:
            raise
        except Exception as e:
            logger.error("get_subscription_failed", subscription_id=subscription_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_current(self, actor_id: str) -> Optional[RecurringDemand]:
        """The actor's active subscription, if any."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("user_id", actor_id)
                .eq("status", SubscriptionStatus.ACTIVE.value)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )

        except Exception as e:
            logger.error("get_current_subscription_failed", actor_id=actor_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return RecurringDemand(**result.data[0])

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create_recurring_demand(
        self,
        actor_id: str,
        quantity: int,
        period_count: int,
        start_now: bool = False,
        today: Optional[date] = None
    ) -> RecurringDemand:
        """
        Create a subscription, replacing the actor's active one.

        With start_now the current period gets an order immediately and the
        subscription has period_count - 1 periods left; otherwise it starts
        with the next materialization.

        Args:
            actor_id: Subscribing actor
            quantity: Units per period (multiple of 10, up to max_per_subscription)
            period_count: Number of periods
            start_now: Also order in the current period
            today: Reference date (defaults to today)

        Returns:
            Created RecurringDemand

        Raises:
            InvalidQuantityError / InvalidPeriodCountError: Bad input
            NoCurrentPeriodError: No period covers today
            LowSeasonSubscriptionsClosedError: Current period is in low season
            CapacityError: Aggregate subscription ceiling reached
            AvailabilityError: start_now without enough stock (carries next period dates)
            TransactionFailure: If a write failed (everything rolled back)
        """
        global_settings = get_settings_service().get_global_settings()

        if not is_bundle_quantity(quantity) or quantity > global_settings.max_per_subscription:
            raise InvalidQuantityError(quantity, maximum=global_settings.max_per_subscription)

        if not settings.subscription_min_periods <= period_count <= settings.subscription_max_periods:
            raise InvalidPeriodCountError(
                period_count,
                settings.subscription_min_periods,
                settings.subscription_max_periods
            )

        period = get_period_service().get_current(today)

        if period.is_low_season:
            raise LowSeasonSubscriptionsClosedError()

        get_capacity_service().enforce_subscription_capacity(quantity, global_settings)

        next_start, next_end = next_period_bounds(period.week_start)

        if start_now:
            if period.all_orders_delivered:
                available = 0
            else:
                available = get_availability_service().get_availability(period.id)

            if quantity > available:
                logger.info(
                    "subscription_start_now_rejected",
                    actor_id=actor_id,
                    requested=quantity,
                    available=available,
                    already_delivered=period.all_orders_delivered
                )
                raise AvailabilityError(
                    available=available,
                    requested=quantity,
                    next_period_start=next_start,
                    next_period_end=next_end
                )

        with Transaction(self.db, "create_subscription") as tx:
            cancelled = self._cancel_active(tx, actor_id)

            created = tx.insert(self.table, {
                "user_id": actor_id,
                "quantity": quantity,
                "period": period_count,
                "weeks_remaining": period_count - 1 if start_now else period_count,
                "status": SubscriptionStatus.ACTIVE.value,
                "next_delivery": next_start.isoformat(),
            })[0]

            if start_now:
                tx.insert(self.orders_table, {
                    "user_id": actor_id,
                    "week_id": period.id,
                    "subscription_id": created["id"],
                    "quantity": quantity,
                    "total": float(compute_total(quantity, period.unit_price)),
                    "status": DemandStatus.PENDING.value,
                    "is_paid": False,
                    "payment_submitted": False,
                    "picked_up": False,
                })

        logger.info(
            "subscription_created",
            subscription_id=created["id"],
            actor_id=actor_id,
            quantity=quantity,
            period_count=period_count,
            start_now=start_now,
            replaced=cancelled
        )
        return self.get_by_id(created["id"])

    def cancel_recurring_demand(self, recurring_id: str, actor_id: str) -> bool:
        """
        Cancel an active subscription and delete its pending orders.

        Raises:
            SubscriptionNotFoundError: If subscription doesn't exist
            ForbiddenError: Subscription belongs to another actor
            StateConflictError: Subscription is not active
            TransactionFailure: If a write failed (everything rolled back)
        """
        subscription = self.get_by_id(recurring_id)

        if subscription.user_id != actor_id:
            raise ForbiddenError("Subscription", recurring_id)

        if subscription.status != SubscriptionStatus.ACTIVE:
            raise StateConflictError(
                code="SUBSCRIPTION_NOT_ACTIVE",
                message="Only active subscriptions can be cancelled",
                details={"subscription_id": recurring_id, "status": subscription.status.value}
            )

        with Transaction(self.db, "cancel_subscription") as tx:
            deleted = self._delete_pending_orders(tx, recurring_id)
            tx.update(self.table, recurring_id, {"status": SubscriptionStatus.CANCELLED.value})

        logger.info(
            "subscription_cancelled",
            subscription_id=recurring_id,
            actor_id=actor_id,
            pending_orders_deleted=deleted
        )
        return True

    # ===================
    # HELPERS
    # ===================

    def _cancel_active(self, tx: Transaction, actor_id: str) -> int:
        """Cancel the actor's active subscriptions; returns how many."""
        active = (
            self.db.table(self.table)
            .select("id")
            .eq("user_id", actor_id)
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .execute()
        ).data or []

        for row in active:
            self._delete_pending_orders(tx, row["id"])
            tx.update(self.table, row["id"], {"status": SubscriptionStatus.CANCELLED.value})

        return len(active)

    def _delete_pending_orders(self, tx: Transaction, subscription_id: str) -> int:
        pending = (
            self.db.table(self.orders_table)
            .select("id")
            .eq("subscription_id", subscription_id)
            .eq("status", DemandStatus.PENDING.value)
            .execute()
        ).data or []

        return len(tx.delete_many(self.orders_table, [row["id"] for row in pending]))


# Singleton instance
_subscription_service: Optional[SubscriptionService] = None


def get_subscription_service() -> SubscriptionService:
    """Get or create SubscriptionService instance."""
    global _subscription_service
    if _subscription_service is None:
        _subscription_service = SubscriptionService()
    return _subscription_service
