"""
Period service: reads allocation periods and records stock declarations.

Declaring stock is the operator action that opens ordering and, the first
time stock is positive, materializes subscriptions for the period.
"""

from datetime import date
from typing import Optional
import structlog

from config import get_supabase_client, Transaction
from models.period import AllocationPeriod, PeriodStockDeclaration
from models.allocation import DeclareStockResponse
from models.demand import DemandStatus, compute_total
from exceptions import (
    DatabaseError,
    PeriodNotFoundError,
    NoCurrentPeriodError,
    OrderingClosedError,
)
from services.capacity_service import LowSeasonPolicy, low_season_order_cap
from services.notification_service import get_notifier

logger = structlog.get_logger(__name__)


class PeriodService:
    """
    Allocation period business logic.

    Handles lookups of the current period and the declare-stock action.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "weeks"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, period_id: str) -> AllocationPeriod:
        """
        Get period by ID.

        Raises:
            PeriodNotFoundError: If period doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", period_id)
                .execute()
            )

            if not result.data:
                raise PeriodNotFoundError(period_id)

            return self._row_to_period(result.data[0])

        except PeriodNotFoundError:
            raise
        except Exception as e:
            logger.error("get_period_failed", period_id=period_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_current(self, today: Optional[date] = None) -> AllocationPeriod:
        """
        Get the period covering today.

        Raises:
            NoCurrentPeriodError: If no period covers today (cycle not advanced)
        """
        today = today or date.today()

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .lte("week_start", today.isoformat())
                .gte("week_end", today.isoformat())
                .order("week_start", desc=True)
                .limit(1)
                .execute()
            )

        except Exception as e:
            logger.error("get_current_period_failed", today=today.isoformat(), error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise NoCurrentPeriodError(today)

        return self._row_to_period(result.data[0])

    def get_recent(self, limit: int = 10) -> list[AllocationPeriod]:
        """Most recent periods, newest first."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .order("week_start", desc=True)
                .limit(limit)
                .execute()
            )
            return [self._row_to_period(row) for row in result.data or []]

        except Exception as e:
            logger.error("get_recent_periods_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def is_superseded(self, period: AllocationPeriod) -> bool:
        """Check if a later period exists, i.e. this one is no longer current."""
        try:
            result = (
                self.db.table(self.table)
                .select("id")
                .gt("week_start", period.week_start.isoformat())
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("superseded_check_failed", period_id=period.id, error=str(e))
            raise DatabaseError("select", str(e))

        return bool(result.data)

    # ===================
    # WRITE OPERATIONS
    # ===================

    def declare_stock(self, period_id: str, data: PeriodStockDeclaration) -> DeclareStockResponse:
        """
        Set a period's stock (and optionally price, delivery, season).

        Opens ordering when stock > 0. The first time stock is positive,
        active subscriptions are materialized; later declarations never
        re-materialize. A price change reprices pending orders.

        Args:
            period_id: Period UUID
            data: Declaration

        Returns:
            DeclareStockResponse with the updated period and, when it ran,
            the materialization summary

        Raises:
            PeriodNotFoundError: If period doesn't exist
            OrderingClosedError: If the period was already delivered or a
                later period has replaced it
            TransactionFailure: If the write failed (rolled back)
        """
        from services.materialization_service import get_materialization_service

        period = self.get_by_id(period_id)

        if period.all_orders_delivered:
            raise OrderingClosedError(period_id, reason="already_delivered")
        if self.is_superseded(period):
            raise OrderingClosedError(period_id, reason="not_current")

        logger.info(
            "declaring_stock",
            period_id=period_id,
            stock=data.available_stock,
            previous_stock=period.available_stock,
            unit_price=str(data.unit_price) if data.unit_price is not None else None
        )

        changes = {
            "available_stock": data.available_stock,
            "is_ordering_open": data.available_stock > 0,
        }
        if data.delivery_date is not None:
            changes["delivery_date"] = data.delivery_date.isoformat()
        if data.delivery_time is not None:
            changes["delivery_time"] = data.delivery_time
        if data.is_low_season is not None:
            changes["is_low_season"] = data.is_low_season

        price_changed = data.unit_price is not None and data.unit_price != period.unit_price
        if price_changed:
            changes["unit_price"] = float(data.unit_price)

        with Transaction(self.db, "declare_stock") as tx:
            tx.update(self.table, period_id, changes)

            if price_changed:
                pending = (
                    self.db.table("orders")
                    .select("id, quantity")
                    .eq("week_id", period_id)
                    .eq("status", DemandStatus.PENDING.value)
                    .execute()
                ).data or []
                for order in pending:
                    total = compute_total(order["quantity"], data.unit_price)
                    tx.update("orders", order["id"], {"total": float(total)})

        summary = None
        if data.available_stock > 0 and not period.subscriptions_processed:
            summary = get_materialization_service().materialize(period_id)

        updated = self.get_by_id(period_id)

        logger.info(
            "stock_declared",
            period_id=period_id,
            stock=updated.available_stock,
            is_ordering_open=updated.is_ordering_open,
            materialized=summary is not None
        )

        notifier = get_notifier()
        if period.available_stock == 0 and updated.available_stock > 0:
            notifier.notify_stock_declared(updated)
        if period.delivery_date is None and updated.delivery_date is not None:
            notifier.notify_delivery_scheduled(updated)

        return DeclareStockResponse(period=updated, subscriptions=summary)

    # ===================
    # HELPERS
    # ===================

    def _row_to_period(self, row: dict) -> AllocationPeriod:
        period = AllocationPeriod(**row)
        period.low_season_order_cap = low_season_order_cap(period, LowSeasonPolicy.from_settings())
        return period


# Singleton instance
_period_service: Optional[PeriodService] = None


def get_period_service() -> PeriodService:
    """Get or create PeriodService instance."""
    global _period_service
    if _period_service is None:
        _period_service = PeriodService()
    return _period_service
