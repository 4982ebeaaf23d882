"""
Shared route helpers: error conversion and request identity.

Authentication happens upstream; routes receive the actor id in the
X-User-Id header. Admin routes additionally check X-API-Key when API_KEY
is configured, cron routes check a bearer CRON_SECRET.
"""

from fastapi import Header
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from config.settings import settings
from exceptions import AppError, AuthenticationError

logger = structlog.get_logger(__name__)


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# DEPENDENCIES
# ===================

async def get_actor_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Actor making the request (required)."""
    if not x_user_id:
        raise AuthenticationError("X-User-Id header is required", code="ACTOR_REQUIRED")
    return x_user_id


async def get_optional_actor_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Actor making the request, if any."""
    return x_user_id or None


async def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Guard for admin routes (open when API_KEY is unset)."""
    if settings.api_key and x_api_key != settings.api_key:
        logger.warning("admin_auth_failed")
        raise AuthenticationError("Invalid API key", code="INVALID_API_KEY")


async def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Guard for cron routes (open when CRON_SECRET is unset)."""
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        logger.warning("cron_auth_failed")
        raise AuthenticationError("Invalid cron secret", code="INVALID_CRON_SECRET")
