"""
Materialization service: turns active subscriptions into orders for a period.

Runs once per period, the first time an operator declares positive stock.
When subscription demand exceeds stock, orders are rationed with fair_trim:
the largest order loses one bundle at a time until demand fits, and no
order is ever trimmed below one bundle.

Enumeration order is fixed: subscriptions by created_at, then id. Among
orders tied at the current maximum, the one with the smallest original
request is trimmed first, then the earliest in enumeration order. This
keeps the outcome deterministic and guarantees a subscriber who asked for
more never ends with less than one who asked for less.

Each period is computed from the subscription's stored quantity; trims
never carry over to later periods.
"""

from datetime import timedelta
from typing import Optional
import structlog

from config import get_supabase_client, Transaction
from config.settings import settings
from models.base import BUNDLE_SIZE
from models.allocation import (
    TrimCandidate,
    TrimOutcome,
    TrimRecord,
    MaterializationSummary,
    PreviewSubscription,
    PreviewResult,
)
from models.demand import DemandStatus, compute_total
from models.subscription import SubscriptionStatus
from exceptions import DatabaseError
from integrations.telegram import send_operator_alert
from services.period_service import get_period_service
from services.notification_service import get_notifier

logger = structlog.get_logger(__name__)


def fair_trim(candidates: list[TrimCandidate], stock: int) -> TrimOutcome:
    """
    Ration subscription quantities down to stock, one bundle at a time.

    Args:
        candidates: Subscriptions in enumeration order
        stock: Stock available to them

    Returns:
        TrimOutcome with final quantities (same order as candidates),
        the number of bundle reductions and any residual deficit left
        once every order is at the one-bundle floor
    """
    quantities = [c.quantity for c in candidates]
    reductions = 0

    while sum(quantities) > stock:
        peak = max(quantities)
        if peak <= BUNDLE_SIZE:
            break

        index = min(
            (i for i, q in enumerate(quantities) if q == peak),
            key=lambda i: (candidates[i].quantity, i)
        )
        quantities[index] -= BUNDLE_SIZE
        reductions += 1

    return TrimOutcome(
        quantities=quantities,
        reductions=reductions,
        residual_deficit=max(0, sum(quantities) - stock)
    )


class MaterializationService:
    """
    Subscription materialization business logic.

    Handles the one-shot materialize step and the read-only preview.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "subscriptions"
        self.orders_table = "orders"

    # ===================
    # READ OPERATIONS
    # ===================

    def active_subscriptions(self) -> list[dict]:
        """Active subscriptions with periods left, in enumeration order."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("status", SubscriptionStatus.ACTIVE.value)
                .gt("weeks_remaining", 0)
                .order("created_at")
                .order("id")
                .execute()
            )
            return result.data or []

        except Exception as e:
            logger.error("active_subscriptions_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def preview(self, candidate_stock: int) -> PreviewResult:
        """
        Forecast materialization against a candidate stock figure.

        Read only; uses the same trimming as materialize.

        Args:
            candidate_stock: Stock the operator is considering

        Returns:
            PreviewResult
        """
        subscriptions = self.active_subscriptions()
        candidates = [self._to_candidate(sub) for sub in subscriptions]
        outcome = fair_trim(candidates, candidate_stock)
        total_demand = sum(c.quantity for c in candidates)

        return PreviewResult(
            subscriber_count=len(candidates),
            total_demand=total_demand,
            available_stock=candidate_stock,
            will_trim=total_demand > candidate_stock,
            deficit=max(0, total_demand - candidate_stock),
            residual_deficit=outcome.residual_deficit,
            remaining_for_one_time_orders=max(0, candidate_stock - sum(outcome.quantities)),
            subscriptions=[
                PreviewSubscription(
                    subscription_id=sub["id"],
                    user_id=sub["user_id"],
                    quantity=sub["quantity"],
                    trimmed_quantity=final,
                    weeks_remaining=sub["weeks_remaining"],
                )
                for sub, final in zip(subscriptions, outcome.quantities)
            ],
        )

    # ===================
    # WRITE OPERATIONS
    # ===================

    def materialize(self, period_id: str) -> MaterializationSummary:
        """
        Create this period's subscription orders, rationing if needed.

        Guarded by the period's subscriptions_processed flag: a second call
        returns a summary with zero counts and already_processed set.

        Raises:
            PeriodNotFoundError: If period doesn't exist
            TransactionFailure: If a write failed (everything rolled back)
        """
        period = get_period_service().get_by_id(period_id)

        if period.subscriptions_processed:
            logger.info("materialization_skipped", period_id=period_id, reason="already_processed")
            return MaterializationSummary(period_id=period_id, already_processed=True)

        next_delivery = (period.week_start + timedelta(days=settings.period_length_days)).isoformat()

        with Transaction(self.db, "materialize_subscriptions") as tx:
            if not tx.compare_and_set("weeks", period_id, "subscriptions_processed", False, True):
                logger.info("materialization_skipped", period_id=period_id, reason="lost_race")
                return MaterializationSummary(period_id=period_id, already_processed=True)

            already_served = self._subscriptions_with_orders(period_id)
            subscriptions = [
                sub for sub in self.active_subscriptions()
                if sub["id"] not in already_served
            ]
            candidates = [self._to_candidate(sub) for sub in subscriptions]
            outcome = fair_trim(candidates, period.available_stock)

            created = tx.insert(self.orders_table, [
                {
                    "user_id": sub["user_id"],
                    "week_id": period_id,
                    "subscription_id": sub["id"],
                    "quantity": final,
                    "total": float(compute_total(final, period.unit_price)),
                    "status": DemandStatus.PENDING.value,
                    "is_paid": False,
                    "payment_submitted": False,
                    "picked_up": False,
                }
                for sub, final in zip(subscriptions, outcome.quantities)
            ])
            order_ids = {row["subscription_id"]: row["id"] for row in created}

            for sub in subscriptions:
                remaining = sub["weeks_remaining"] - 1
                changes = {"weeks_remaining": remaining, "next_delivery": next_delivery}
                if remaining <= 0:
                    changes["status"] = SubscriptionStatus.COMPLETED.value
                tx.update(self.table, sub["id"], changes)

        trims = [
            TrimRecord(
                subscription_id=sub["id"],
                user_id=sub["user_id"],
                order_id=order_ids.get(sub["id"]),
                original_quantity=sub["quantity"],
                new_quantity=final,
            )
            for sub, final in zip(subscriptions, outcome.quantities)
            if final < sub["quantity"]
        ]

        summary = MaterializationSummary(
            period_id=period_id,
            records_created=len(created),
            trims_applied=len(trims),
            total_quantity_committed=sum(outcome.quantities),
            residual_deficit=outcome.residual_deficit,
            trims=trims,
        )

        logger.info(
            "subscriptions_materialized",
            period_id=period_id,
            records_created=summary.records_created,
            trims_applied=summary.trims_applied,
            bundle_reductions=outcome.reductions,
            total_quantity_committed=summary.total_quantity_committed
        )

        notifier = get_notifier()
        for trim in trims:
            notifier.notify_trimmed(trim.user_id, trim.original_quantity, trim.new_quantity)

        if outcome.residual_deficit > 0:
            logger.warning(
                "materialization_residual_deficit",
                period_id=period_id,
                stock=period.available_stock,
                committed=summary.total_quantity_committed,
                deficit=outcome.residual_deficit
            )
            send_operator_alert(
                "residual_deficit",
                week_start=period.week_start.isoformat(),
                stock=period.available_stock,
                committed=summary.total_quantity_committed,
                deficit=outcome.residual_deficit
            )

        return summary

    # ===================
    # HELPERS
    # ===================

    def _subscriptions_with_orders(self, period_id: str) -> set[str]:
        """Subscriptions that already have an order in the period (started now)."""
        rows = (
            self.db.table(self.orders_table)
            .select("subscription_id")
            .eq("week_id", period_id)
            .execute()
        ).data or []
        return {row["subscription_id"] for row in rows if row.get("subscription_id")}

    @staticmethod
    def _to_candidate(sub: dict) -> TrimCandidate:
        return TrimCandidate(
            subscription_id=sub["id"],
            user_id=sub["user_id"],
            quantity=sub["quantity"],
        )


# Singleton instance
_materialization_service: Optional[MaterializationService] = None


def get_materialization_service() -> MaterializationService:
    """Get or create MaterializationService instance."""
    global _materialization_service
    if _materialization_service is None:
        _materialization_service = MaterializationService()
    return _materialization_service
