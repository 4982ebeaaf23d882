"""
Global settings API routes.

Reading is public; changes require the admin API key.
"""

from fastapi import APIRouter, Depends
import structlog

from models.settings import (
    GlobalSettings,
    GlobalSettingsUpdate,
    DefaultPriceUpdate,
    DefaultPriceResult,
)
from services.settings_service import get_settings_service
from routes.deps import handle_error, require_api_key

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=GlobalSettings)
async def get_global_settings():
    """Get the global allocation settings."""
    try:
        service = get_settings_service()
        return service.get_global_settings()

    except Exception as e:
        return handle_error(e)


@router.patch("", response_model=GlobalSettings, dependencies=[Depends(require_api_key)])
async def update_global_settings(data: GlobalSettingsUpdate):
    """
    Update subscription ceilings.

    Only provided fields are updated.
    """
    try:
        service = get_settings_service()
        return service.update_global_settings(data)

    except Exception as e:
        return handle_error(e)


@router.put("/default-price", response_model=DefaultPriceResult, dependencies=[Depends(require_api_key)])
async def update_default_price(data: DefaultPriceUpdate):
    """
    Change the default price per bundle.

    With apply_to_current, periods that have not ended are repriced along
    with their pending orders.
    """
    try:
        service = get_settings_service()
        return service.update_default_price(data.price, apply_to_current=data.apply_to_current)

    except Exception as e:
        return handle_error(e)
