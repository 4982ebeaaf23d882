"""
Order API routes.

One-time orders for the requesting actor, plus the owner-side
confirmations (payment claim, pickup).
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional
import structlog

from models.demand import (
    DemandRecord,
    DemandCreate,
    DemandUpdate,
    DemandListResponse,
)
from services.demand_service import get_demand_service
from services.fulfillment_service import get_fulfillment_service
from services.period_service import get_period_service
from routes.deps import handle_error, get_actor_id

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# READ ROUTES
# ===================

@router.get("", response_model=DemandListResponse)
async def list_orders(actor_id: str = Depends(get_actor_id)):
    """List the actor's orders, newest first."""
    try:
        service = get_demand_service()
        orders = service.list_for_actor(actor_id)

        return DemandListResponse(data=orders, total=len(orders))

    except Exception as e:
        return handle_error(e)


@router.get("/current", response_model=Optional[DemandRecord])
async def get_current_order(
    subscription: bool = Query(False, description="Return the subscription order instead"),
    actor_id: str = Depends(get_actor_id)
):
    """The actor's order in the current period, or null."""
    try:
        service = get_demand_service()
        return service.get_current_for_actor(actor_id, subscription=subscription)

    except Exception as e:
        return handle_error(e)


# ===================
# WRITE ROUTES
# ===================

@router.post("", response_model=DemandRecord, status_code=201)
async def place_order(data: DemandCreate, actor_id: str = Depends(get_actor_id)):
    """
    Place a one-time order (defaults to the current period).

    Raises:
        409: Ordering closed, duplicate order, low-season cap, or not enough stock
        422: Invalid quantity
    """
    try:
        period_id = data.period_id or get_period_service().get_current().id

        service = get_demand_service()
        return service.place_demand(actor_id, period_id, data.quantity)

    except Exception as e:
        return handle_error(e)


@router.patch("/{order_id}", response_model=DemandRecord)
async def modify_order(
    order_id: str,
    data: DemandUpdate,
    actor_id: str = Depends(get_actor_id)
):
    """
    Change the quantity of a pending one-time order.

    Raises:
        403: Not the owner
        409: Not modifiable, ordering closed, or not enough stock
    """
    try:
        service = get_demand_service()
        return service.modify_demand(order_id, actor_id, data.quantity)

    except Exception as e:
        return handle_error(e)


@router.delete("/{order_id}", status_code=204)
async def cancel_order(order_id: str, actor_id: str = Depends(get_actor_id)):
    """
    Cancel a pending one-time order.

    Raises:
        403: Not the owner
        409: Not cancellable
    """
    try:
        service = get_demand_service()
        service.cancel_demand(order_id, actor_id)
        return None

    except Exception as e:
        return handle_error(e)


# ===================
# CONFIRMATION ROUTES
# ===================

@router.post("/{order_id}/payment-submitted", response_model=DemandRecord)
async def submit_payment(order_id: str, actor_id: str = Depends(get_actor_id)):
    """Owner reports having paid; an operator confirms separately."""
    try:
        service = get_fulfillment_service()
        return service.submit_payment(order_id, actor_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{order_id}/pickup", response_model=DemandRecord)
async def confirm_pickup(order_id: str, actor_id: str = Depends(get_actor_id)):
    """
    Owner confirms pickup of a delivered order.

    Raises:
        409: Order not delivered yet
    """
    try:
        service = get_fulfillment_service()
        return service.confirm_pickup(order_id, actor_id)

    except Exception as e:
        return handle_error(e)
