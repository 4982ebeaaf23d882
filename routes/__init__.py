"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.periods import router as periods_router
from routes.orders import router as orders_router
from routes.subscriptions import router as subscriptions_router
from routes.admin import router as admin_router
from routes.cron import router as cron_router
from routes.settings import router as settings_router

__all__ = [
    "periods_router",
    "orders_router",
    "subscriptions_router",
    "admin_router",
    "cron_router",
    "settings_router",
]
