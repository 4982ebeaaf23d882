"""
Fulfillment service: delivery, payment and pickup confirmations.

Each confirmation writes one flag and then re-evaluates the completion
rule (delivered, paid and picked up) on the freshly read record, inside
one transaction. Status only ever moves forward.
"""

from typing import Optional
import structlog

from config import get_supabase_client, Transaction
from models.demand import (
    DemandRecord,
    DemandStatus,
    DeliveryConfirmation,
    is_valid_status_transition,
    resolve_status,
)
from exceptions import (
    ForbiddenError,
    StateConflictError,
    InvalidStatusTransitionError,
)
from services.period_service import get_period_service
from services.demand_service import get_demand_service
from services.notification_service import get_notifier

logger = structlog.get_logger(__name__)


class FulfillmentService:
    """
    Order confirmation business logic.

    Delivery is an operator bulk action per period; payment is confirmed
    by an operator; payment claims and pickups come from the owner.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "orders"

    # ===================
    # DELIVERY
    # ===================

    def confirm_delivery(self, period_id: str) -> DeliveryConfirmation:
        """
        Mark every pending order in the period delivered.

        Also flags the period fully delivered and closes ordering. Orders
        that were already paid and picked up complete immediately. Running
        it again on a delivered period changes nothing.

        Raises:
            PeriodNotFoundError: If period doesn't exist
            TransactionFailure: If a write failed (everything rolled back)
        """
        period_service = get_period_service()
        period = period_service.get_by_id(period_id)

        if period.all_orders_delivered:
            logger.info("delivery_already_confirmed", period_id=period_id)
            return DeliveryConfirmation(period=period, already_delivered=True)

        completed = 0

        with Transaction(self.db, "confirm_delivery") as tx:
            pending = (
                self.db.table(self.table)
                .select("*")
                .eq("week_id", period_id)
                .eq("status", DemandStatus.PENDING.value)
                .execute()
            ).data or []

            delivered_ids = [row["id"] for row in pending]
            tx.update_many(self.table, delivered_ids, {"status": DemandStatus.DELIVERED.value})

            for row in pending:
                record = DemandRecord(**{**row, "status": DemandStatus.DELIVERED.value})
                if resolve_status(record) == DemandStatus.COMPLETED:
                    tx.update(self.table, record.id, {"status": DemandStatus.COMPLETED.value})
                    completed += 1

            tx.update("weeks", period_id, {
                "all_orders_delivered": True,
                "is_ordering_open": False,
            })

        updated = period_service.get_by_id(period_id)

        logger.info(
            "delivery_confirmed",
            period_id=period_id,
            records_delivered=len(delivered_ids),
            records_completed=completed
        )

        get_notifier().notify_delivered(updated)

        return DeliveryConfirmation(
            period=updated,
            records_delivered=len(delivered_ids),
            records_completed=completed
        )

    # ===================
    # PAYMENT
    # ===================

    def confirm_payment(self, record_id: str) -> DemandRecord:
        """
        Operator confirms an order was paid.

        Raises:
            DemandNotFoundError: If order doesn't exist
        """
        record = get_demand_service().get_by_id(record_id)

        if record.is_paid:
            return record

        return self._set_flag(record, "is_paid", "confirm_payment")

    def submit_payment(self, record_id: str, actor_id: str) -> DemandRecord:
        """
        Owner claims to have paid. An operator still has to confirm.

        Raises:
            DemandNotFoundError: If order doesn't exist
            ForbiddenError: Order belongs to another actor
            StateConflictError: Order already completed
        """
        record = self._get_owned(record_id, actor_id)

        if record.status == DemandStatus.COMPLETED:
            raise StateConflictError(
                code="ORDER_COMPLETED",
                message="Order is already completed",
                details={"order_id": record_id}
            )

        if record.payment_submitted:
            return record

        return self._set_flag(record, "payment_submitted", "submit_payment")

    # ===================
    # PICKUP
    # ===================

    def confirm_pickup(self, record_id: str, actor_id: Optional[str] = None) -> DemandRecord:
        """
        Confirm the order was picked up.

        Args:
            record_id: Order UUID
            actor_id: Owner confirming; None for an operator override

        Raises:
            DemandNotFoundError: If order doesn't exist
            ForbiddenError: Order belongs to another actor
            StateConflictError: Order not delivered yet
        """
        if actor_id is None:
            record = get_demand_service().get_by_id(record_id)
        else:
            record = self._get_owned(record_id, actor_id)

        if not record.is_delivered:
            raise StateConflictError(
                code="ORDER_NOT_DELIVERED",
                message="Order has not been delivered yet",
                details={"order_id": record_id, "status": record.status.value}
            )

        if record.picked_up:
            return record

        return self._set_flag(record, "picked_up", "confirm_pickup")

    # ===================
    # HELPERS
    # ===================

    def _set_flag(self, record: DemandRecord, flag: str, operation: str) -> DemandRecord:
        """Write one confirmation flag, then re-evaluate completion on fresh state."""
        demand_service = get_demand_service()

        with Transaction(self.db, operation) as tx:
            tx.update(self.table, record.id, {flag: True})

            fresh = demand_service.get_by_id(record.id)
            new_status = resolve_status(fresh)

            if new_status != fresh.status:
                if not is_valid_status_transition(fresh.status, new_status):
                    raise InvalidStatusTransitionError(fresh.status.value, new_status.value)
                tx.update(self.table, record.id, {"status": new_status.value})

        updated = demand_service.get_by_id(record.id)

        logger.info(
            "order_confirmation_recorded",
            order_id=record.id,
            flag=flag,
            status=updated.status.value
        )
        return updated

    @staticmethod
    def _get_owned(record_id: str, actor_id: str) -> DemandRecord:
        record = get_demand_service().get_by_id(record_id)
        if record.user_id != actor_id:
            raise ForbiddenError("Order", record_id)
        return record


# Singleton instance
_fulfillment_service: Optional[FulfillmentService] = None


def get_fulfillment_service() -> FulfillmentService:
    """Get or create FulfillmentService instance."""
    global _fulfillment_service
    if _fulfillment_service is None:
        _fulfillment_service = FulfillmentService()
    return _fulfillment_service
