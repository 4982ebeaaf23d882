"""
Demand service: one-time orders placed, modified and cancelled by actors.

Every write path re-validates against live availability right before it
commits. Checks run in a fixed order: quantity, period state, low-season
cap, duplicate order, availability.
"""

from datetime import date
from typing import Optional
import structlog

from config import get_supabase_client
from models.base import is_bundle_quantity
from models.period import AllocationPeriod
from models.demand import DemandRecord, DemandStatus, compute_total
from exceptions import (
    DatabaseError,
    DemandNotFoundError,
    ForbiddenError,
    InvalidQuantityError,
    LowSeasonCapError,
    AvailabilityError,
    StateConflictError,
    OrderingClosedError,
    DuplicateDemandError,
    NoCurrentPeriodError,
)
from services.period_service import get_period_service
from services.availability_service import get_availability_service

logger = structlog.get_logger(__name__)


class DemandService:
    """
    Order business logic.

    Handles one-time orders. Subscription orders are created by
    materialization and cannot be changed by their owner.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "orders"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, record_id: str) -> DemandRecord:
        """
        Get order by ID.

        Raises:
            DemandNotFoundError: If order doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", record_id)
                .execute()
            )

            if not result.data:
                raise DemandNotFoundError(record_id)

            return DemandRecord(**result.data[0])

        except DemandNotFoundError:
            raise
        except Exception as e:
            logger.error("get_order_failed", order_id=record_id, error=str(e))
            raise DatabaseError("select", str(e))

    def list_for_actor(self, actor_id: str) -> list[DemandRecord]:
        """All orders of an actor, newest first."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("user_id", actor_id)
                .order("created_at", desc=True)
                .execute()
            )
            return [DemandRecord(**row) for row in result.data or []]

        except Exception as e:
            logger.error("list_orders_failed", actor_id=actor_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_current_for_actor(
        self,
        actor_id: str,
        subscription: bool = False,
        today: Optional[date] = None
    ) -> Optional[DemandRecord]:
        """
        The actor's order in the current period.

        Args:
            actor_id: Actor
            subscription: Look for the subscription order instead of the one-time order
            today: Reference date (defaults to today)

        Returns:
            DemandRecord or None (also None when no period is current)
        """
        try:
            period = get_period_service().get_current(today)
        except NoCurrentPeriodError:
            return None

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("user_id", actor_id)
                .eq("week_id", period.id)
                .order("created_at", desc=True)
                .execute()
            )

        except Exception as e:
            logger.error("get_current_order_failed", actor_id=actor_id, error=str(e))
            raise DatabaseError("select", str(e))

        for row in result.data or []:
            if bool(row.get("subscription_id")) == subscription:
                return DemandRecord(**row)
        return None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def place_demand(self, actor_id: str, period_id: str, quantity: int) -> DemandRecord:
        """
        Place a one-time order.

        Args:
            actor_id: Ordering actor
            period_id: Target period
            quantity: Units, positive multiple of 10

        Returns:
            Created DemandRecord (pending)

        Raises:
            InvalidQuantityError: Quantity not a positive multiple of 10
            PeriodNotFoundError: Period doesn't exist
            OrderingClosedError: Ordering closed or period already delivered
            LowSeasonCapError: Above the low-season per-order cap
            DuplicateDemandError: Actor already has a pending order here
            AvailabilityError: Not enough stock left (carries available)
        """
        if not is_bundle_quantity(quantity):
            raise InvalidQuantityError(quantity)

        period = get_period_service().get_by_id(period_id)
        self._ensure_open(period)
        self._ensure_under_cap(period, quantity)

        existing = self._pending_one_time(actor_id, period_id)
        if existing:
            raise DuplicateDemandError(existing["id"])

        available = get_availability_service().get_availability(period_id, actor_id)
        if quantity > available:
            logger.info(
                "demand_rejected_insufficient_stock",
                actor_id=actor_id,
                period_id=period_id,
                requested=quantity,
                available=available
            )
            raise AvailabilityError(available=available, requested=quantity)

        try:
            result = self.db.table(self.table).insert({
                "user_id": actor_id,
                "week_id": period_id,
                "subscription_id": None,
                "quantity": quantity,
                "total": float(compute_total(quantity, period.unit_price)),
                "status": DemandStatus.PENDING.value,
                "is_paid": False,
                "payment_submitted": False,
                "picked_up": False,
            }).execute()

        except Exception as e:
            logger.error("place_demand_failed", actor_id=actor_id, error=str(e))
            raise DatabaseError("insert", str(e))

        record = DemandRecord(**result.data[0])

        logger.info(
            "demand_placed",
            order_id=record.id,
            actor_id=actor_id,
            period_id=period_id,
            quantity=quantity,
            total=str(record.total)
        )
        return record

    def modify_demand(self, record_id: str, actor_id: str, new_quantity: int) -> DemandRecord:
        """
        Change the quantity of a pending one-time order.

        The total is recomputed from the period's current price.

        Raises:
            InvalidQuantityError: Quantity not a positive multiple of 10
            DemandNotFoundError: Order doesn't exist
            ForbiddenError: Order belongs to another actor
            StateConflictError: Order is not pending, is paid, or is a subscription order
            OrderingClosedError: Ordering closed for the period
            LowSeasonCapError: Above the low-season per-order cap
            AvailabilityError: Not enough stock left
        """
        if not is_bundle_quantity(new_quantity):
            raise InvalidQuantityError(new_quantity)

        record = self._get_owned_mutable(record_id, actor_id)

        period = get_period_service().get_by_id(record.week_id)
        self._ensure_open(period)
        self._ensure_under_cap(period, new_quantity)

        available = get_availability_service().get_availability(period.id, actor_id)
        if new_quantity > available:
            raise AvailabilityError(available=available, requested=new_quantity)

        try:
            result = (
                self.db.table(self.table)
                .update({
                    "quantity": new_quantity,
                    "total": float(compute_total(new_quantity, period.unit_price)),
                })
                .eq("id", record_id)
                .execute()
            )

        except Exception as e:
            logger.error("modify_demand_failed", order_id=record_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise DemandNotFoundError(record_id)

        logger.info(
            "demand_modified",
            order_id=record_id,
            from_quantity=record.quantity,
            to_quantity=new_quantity
        )
        return DemandRecord(**result.data[0])

    def cancel_demand(self, record_id: str, actor_id: str) -> bool:
        """
        Delete a pending one-time order.

        Raises:
            DemandNotFoundError: Order doesn't exist
            ForbiddenError: Order belongs to another actor
            StateConflictError: Order is not pending, is paid, or is a subscription order
        """
        record = self._get_owned_mutable(record_id, actor_id)

        try:
            self.db.table(self.table).delete().eq("id", record_id).execute()
        except Exception as e:
            logger.error("cancel_demand_failed", order_id=record_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("demand_cancelled", order_id=record_id, quantity=record.quantity)
        return True

    # ===================
    # HELPERS
    # ===================

    def _get_owned_mutable(self, record_id: str, actor_id: str) -> DemandRecord:
        record = self.get_by_id(record_id)

        if record.user_id != actor_id:
            raise ForbiddenError("Order", record_id)

        if not record.is_owner_mutable:
            raise StateConflictError(
                code="ORDER_NOT_MODIFIABLE",
                message="Only pending, unpaid one-time orders can be changed",
                details={
                    "order_id": record_id,
                    "status": record.status.value,
                    "is_paid": record.is_paid,
                    "subscription_id": record.subscription_id,
                }
            )
        return record

    def _pending_one_time(self, actor_id: str, period_id: str) -> Optional[dict]:
        try:
            result = (
                self.db.table(self.table)
                .select("id")
                .eq("user_id", actor_id)
                .eq("week_id", period_id)
                .eq("status", DemandStatus.PENDING.value)
                .is_("subscription_id", "null")
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("pending_order_lookup_failed", actor_id=actor_id, error=str(e))
            raise DatabaseError("select", str(e))

        return result.data[0] if result.data else None

    @staticmethod
    def _ensure_open(period: AllocationPeriod) -> None:
        if period.all_orders_delivered:
            raise OrderingClosedError(period.id, reason="already_delivered")
        if not period.is_ordering_open:
            raise OrderingClosedError(period.id)
        if get_period_service().is_superseded(period):
            raise OrderingClosedError(period.id, reason="not_current")

    @staticmethod
    def _ensure_under_cap(period: AllocationPeriod, quantity: int) -> None:
        cap = period.low_season_order_cap
        if cap is not None and quantity > cap:
            raise LowSeasonCapError(cap=cap, requested=quantity)


# Singleton instance
_demand_service: Optional[DemandService] = None


def get_demand_service() -> DemandService:
    """Get or create DemandService instance."""
    global _demand_service
    if _demand_service is None:
        _demand_service = DemandService()
    return _demand_service
