"""
Cron API routes.

Called by an external scheduler with a bearer CRON_SECRET.
"""

from fastapi import APIRouter, Depends
import structlog

from models.period import AllocationPeriod
from models.notification import DispatchResult
from services.cycle_service import get_cycle_service
from services.notification_service import get_notifier
from routes.deps import handle_error, require_cron_secret

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/advance-cycle", response_model=AllocationPeriod)
async def advance_cycle():
    """
    Close ended periods and open the current one.

    Safe to call repeatedly; returns the current period.

    Raises:
        503: Rolled back (retryable)
    """
    try:
        service = get_cycle_service()
        return service.advance()

    except Exception as e:
        return handle_error(e)


@router.post("/payment-reminders", response_model=DispatchResult)
async def send_payment_reminders():
    """Remind owners of delivered, unpaid orders."""
    try:
        return get_notifier().notify_payment_reminder()

    except Exception as e:
        return handle_error(e)
