"""
Cycle service: advances the allocation period at each boundary.

Run by an external scheduler (cron endpoint or scripts/advance_cycle.py).
Re-running for the same date is a no-op beyond closing periods that are
already closed. Subscription materialization is not done here; it happens
when an operator declares stock.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union
import structlog

from config import get_supabase_client, Transaction
from config.settings import settings
from models.period import AllocationPeriod
from exceptions import TransactionFailure
from integrations.telegram import send_operator_alert
from services.period_service import get_period_service
from services.settings_service import get_settings_service

logger = structlog.get_logger(__name__)


def period_bounds(today: date, length_days: int, anchor: date) -> tuple[date, date]:
    """
    Start and end (inclusive) of the period containing today.

    Boundaries repeat every length_days from anchor, in both directions.
    """
    offset = (today - anchor).days
    start = anchor + timedelta(days=(offset // length_days) * length_days)
    return start, start + timedelta(days=length_days - 1)


def next_period_bounds(today: date) -> tuple[date, date]:
    """Bounds of the period after the one containing today."""
    start, _ = period_bounds(today, settings.period_length_days, settings.period_anchor_date)
    return period_bounds(
        start + timedelta(days=settings.period_length_days),
        settings.period_length_days,
        settings.period_anchor_date
    )


class CycleService:
    """
    Period advance logic.

    Closes stale periods and opens the one covering today, atomically.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "weeks"

    def advance(self, now: Optional[Union[date, datetime]] = None) -> AllocationPeriod:
        """
        Close every open period that has ended and return the current one.

        The current period is created (stock 0, ordering closed, default
        price) if it does not exist yet.

        Args:
            now: Reference moment (defaults to today)

        Returns:
            The period covering now

        Raises:
            TransactionFailure: If any write failed (everything rolled back)
        """
        if now is None:
            today = date.today()
        elif isinstance(now, datetime):
            today = now.date()
        else:
            today = now

        start, end = period_bounds(today, settings.period_length_days, settings.period_anchor_date)

        logger.info(
            "advancing_cycle",
            today=today.isoformat(),
            week_start=start.isoformat(),
            week_end=end.isoformat()
        )

        try:
            with Transaction(self.db, "advance_cycle") as tx:
                stale = (
                    self.db.table(self.table)
                    .select("id")
                    .eq("is_ordering_open", True)
                    .lt("week_end", today.isoformat())
                    .execute()
                ).data or []
                stale_ids = [row["id"] for row in stale]
                tx.update_many(self.table, stale_ids, {"is_ordering_open": False})

                existing = (
                    self.db.table(self.table)
                    .select("*")
                    .eq("week_start", start.isoformat())
                    .execute()
                ).data or []

                if existing:
                    period_id = existing[0]["id"]
                    created = False
                else:
                    price = get_settings_service().get_global_settings().default_unit_price
                    row = tx.insert(self.table, {
                        "week_start": start.isoformat(),
                        "week_end": end.isoformat(),
                        "available_stock": 0,
                        "unit_price": float(price),
                        "is_ordering_open": False,
                        "is_low_season": False,
                        "subscriptions_processed": False,
                        "all_orders_delivered": False,
                        "delivery_date": None,
                        "delivery_time": None,
                    })[0]
                    period_id = row["id"]
                    created = True

        except TransactionFailure as e:
            send_operator_alert("cycle_advance_failed", today=today.isoformat(), error=e.message)
            raise

        logger.info(
            "cycle_advanced",
            period_id=period_id,
            closed=len(stale_ids),
            created=created
        )

        return get_period_service().get_by_id(period_id)


# Singleton instance
_cycle_service: Optional[CycleService] = None


def get_cycle_service() -> CycleService:
    """Get or create CycleService instance."""
    global _cycle_service
    if _cycle_service is None:
        _cycle_service = CycleService()
    return _cycle_service
