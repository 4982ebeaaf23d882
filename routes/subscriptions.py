"""
Subscription API routes.
"""

from fastapi import APIRouter, Depends
from typing import Optional
import structlog

from models.subscription import (
    RecurringDemand,
    SubscriptionCreate,
    SubscriptionAvailability,
)
from services.subscription_service import get_subscription_service
from services.capacity_service import get_capacity_service
from routes.deps import handle_error, get_actor_id

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/current", response_model=Optional[RecurringDemand])
async def get_current_subscription(actor_id: str = Depends(get_actor_id)):
    """The actor's active subscription, or null."""
    try:
        service = get_subscription_service()
        return service.get_current(actor_id)

    except Exception as e:
        return handle_error(e)


@router.get("/availability", response_model=SubscriptionAvailability)
async def get_subscription_availability():
    """Whether new subscriptions are accepted right now, and up to what size."""
    try:
        service = get_capacity_service()
        return service.subscription_availability()

    except Exception as e:
        return handle_error(e)


@router.post("", response_model=RecurringDemand, status_code=201)
async def create_subscription(data: SubscriptionCreate, actor_id: str = Depends(get_actor_id)):
    """
    Create a subscription, replacing the actor's active one.

    Raises:
        409: Low season, capacity reached, or (start_now) not enough stock;
             capacity and stock errors carry remaining/available figures
        422: Invalid quantity or period count
    """
    try:
        service = get_subscription_service()
        return service.create_recurring_demand(
            actor_id,
            data.quantity,
            data.period_count,
            start_now=data.start_now
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/{subscription_id}", status_code=204)
async def cancel_subscription(subscription_id: str, actor_id: str = Depends(get_actor_id)):
    """
    Cancel an active subscription and its pending orders.

    Raises:
        403: Not the owner
        409: Not active
    """
    try:
        service = get_subscription_service()
        service.cancel_recurring_demand(subscription_id, actor_id)
        return None

    except Exception as e:
        return handle_error(e)
