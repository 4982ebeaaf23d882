"""
Availability service: remaining stock in a period.

Availability is recomputed from live rows on every request; there is no
reservation step. Two concurrent placements can both pass validation and
oversubscribe a period, which later queries report as zero remaining.
"""

from typing import Iterable, Optional
import structlog

from config import get_supabase_client
from models.demand import DemandStatus
from models.period import AvailabilityResponse
from exceptions import DatabaseError
from services.period_service import get_period_service

logger = structlog.get_logger(__name__)


def available_for(stock: int, records: Iterable[dict], actor_id: Optional[str] = None) -> int:
    """
    Remaining stock given a period's order rows.

    Every pending order counts against stock. When actor_id is given, that
    actor's own pending one-time order is added back, since the actor is
    about to replace it. Result is floored at 0.

    Args:
        stock: Period's declared stock
        records: Order rows for the period (dicts)
        actor_id: Viewpoint actor, or None for true remaining stock

    Returns:
        Non-negative available quantity
    """
    committed = 0
    replaceable = 0

    for record in records:
        if record.get("status") != DemandStatus.PENDING.value:
            continue
        committed += record["quantity"]
        if (
            actor_id is not None
            and record.get("user_id") == actor_id
            and record.get("subscription_id") is None
        ):
            replaceable += record["quantity"]

    return max(0, stock - committed + replaceable)


class AvailabilityService:
    """Reads a period and its pending orders to answer availability queries."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "orders"

    def pending_records(self, period_id: str) -> list[dict]:
        """Pending order rows for a period."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("week_id", period_id)
                .eq("status", DemandStatus.PENDING.value)
                .execute()
            )
            return result.data or []

        except Exception as e:
            logger.error("pending_records_failed", period_id=period_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_availability(self, period_id: str, actor_id: Optional[str] = None) -> int:
        """
        Remaining stock in a period, optionally from one actor's viewpoint.

        Raises:
            PeriodNotFoundError: If period doesn't exist
        """
        period = get_period_service().get_by_id(period_id)
        available = available_for(period.available_stock, self.pending_records(period_id), actor_id)

        logger.debug(
            "availability_computed",
            period_id=period_id,
            actor_id=actor_id,
            stock=period.available_stock,
            available=available
        )
        return available

    def describe(self, period_id: str, actor_id: Optional[str] = None) -> AvailabilityResponse:
        """Availability wrapped for API responses."""
        return AvailabilityResponse(
            period_id=period_id,
            actor_id=actor_id,
            available=self.get_availability(period_id, actor_id)
        )


# Singleton instance
_availability_service: Optional[AvailabilityService] = None


def get_availability_service() -> AvailabilityService:
    """Get or create AvailabilityService instance."""
    global _availability_service
    if _availability_service is None:
        _availability_service = AvailabilityService()
    return _availability_service
