"""
Period API routes.

Public reads of allocation periods and their remaining stock.
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional
import structlog

from models.period import AllocationPeriod, AvailabilityResponse
from services.period_service import get_period_service
from services.availability_service import get_availability_service
from routes.deps import handle_error, get_optional_actor_id

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# ROUTES
# ===================

@router.get("", response_model=list[AllocationPeriod])
async def list_periods(
    limit: int = Query(10, ge=1, le=100, description="Number of periods")
):
    """List recent periods, newest first."""
    try:
        service = get_period_service()
        return service.get_recent(limit=limit)

    except Exception as e:
        return handle_error(e)


@router.get("/current", response_model=AllocationPeriod)
async def get_current_period():
    """
    Get the period covering today.

    Raises:
        404: No current period (cycle not advanced yet)
    """
    try:
        service = get_period_service()
        return service.get_current()

    except Exception as e:
        return handle_error(e)


@router.get("/{period_id}", response_model=AllocationPeriod)
async def get_period(period_id: str):
    """Get period by ID."""
    try:
        service = get_period_service()
        return service.get_by_id(period_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{period_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    period_id: str,
    actor_id: Optional[str] = Depends(get_optional_actor_id)
):
    """
    Remaining stock in a period.

    With an X-User-Id header the answer is what that actor could still
    claim (their own pending order counts as available to them).
    """
    try:
        service = get_availability_service()
        return service.describe(period_id, actor_id)

    except Exception as e:
        return handle_error(e)
