"""
Admin API routes.

Operator actions: declare stock, preview materialization, confirm
delivery, payment and pickup.
"""

from fastapi import APIRouter, Depends, Query
import structlog

from models.period import PeriodStockDeclaration
from models.allocation import DeclareStockResponse, PreviewResult
from models.demand import DemandRecord, DeliveryConfirmation
from services.period_service import get_period_service
from services.materialization_service import get_materialization_service
from services.fulfillment_service import get_fulfillment_service
from integrations.telegram import test_connection
from routes.deps import handle_error, require_api_key

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_api_key)])


# ===================
# STOCK
# ===================

@router.put("/periods/{period_id}/stock", response_model=DeclareStockResponse)
async def declare_stock(period_id: str, data: PeriodStockDeclaration):
    """
    Declare a period's stock.

    Opens ordering when stock > 0 and, the first time, materializes
    subscriptions (trimming them if demand exceeds stock).

    Raises:
        404: Period not found
        409: Period already delivered
        503: Write failed and was rolled back (retryable)
    """
    try:
        service = get_period_service()
        return service.declare_stock(period_id, data)

    except Exception as e:
        return handle_error(e)


@router.get("/subscriptions/preview", response_model=PreviewResult)
async def preview_materialization(
    stock: int = Query(..., ge=0, description="Candidate stock figure")
):
    """Forecast subscription demand against a stock figure. Changes nothing."""
    try:
        service = get_materialization_service()
        return service.preview(stock)

    except Exception as e:
        return handle_error(e)


# ===================
# FULFILLMENT
# ===================

@router.post("/periods/{period_id}/deliver", response_model=DeliveryConfirmation)
async def confirm_delivery(period_id: str):
    """Mark every pending order in the period delivered and close ordering."""
    try:
        service = get_fulfillment_service()
        return service.confirm_delivery(period_id)

    except Exception as e:
        return handle_error(e)


@router.post("/orders/{order_id}/payment", response_model=DemandRecord)
async def confirm_payment(order_id: str):
    """Confirm an order was paid."""
    try:
        service = get_fulfillment_service()
        return service.confirm_payment(order_id)

    except Exception as e:
        return handle_error(e)


@router.post("/orders/{order_id}/pickup", response_model=DemandRecord)
async def confirm_pickup(order_id: str):
    """Confirm pickup on the owner's behalf."""
    try:
        service = get_fulfillment_service()
        return service.confirm_pickup(order_id)

    except Exception as e:
        return handle_error(e)


# ===================
# OPERATOR ALERTS
# ===================

@router.post("/telegram/test")
async def test_telegram():
    """Send a test message to the operators' Telegram chat."""
    try:
        return test_connection()

    except Exception as e:
        return handle_error(e)
