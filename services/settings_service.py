"""
Settings service for the global allocation settings row.

A single app_settings row holds the default price and subscription
ceilings. It is created lazily with defaults from config.Settings and is
re-read on every call; nothing is cached in-process.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
import structlog

from config import get_supabase_client, Transaction
from config.settings import settings
from models.settings import (
    GlobalSettings,
    GlobalSettingsUpdate,
    DefaultPriceResult,
)
from models.demand import DemandStatus, compute_total
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class SettingsService:
    """
    Global settings business logic.

    Handles read and update operations for the app_settings singleton.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "app_settings"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_global_settings(self) -> GlobalSettings:
        """
        Get the global settings, creating the row with defaults if missing.

        Returns:
            GlobalSettings

        Raises:
            DatabaseError: If the read or seed insert fails
        """
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .order("created_at")
                .limit(1)
                .execute()
            )

            if response.data:
                return GlobalSettings(**response.data[0])

            seed = {
                "default_unit_price": float(settings.default_unit_price),
                "max_subscription_quantity": settings.default_max_subscription_quantity,
                "max_per_subscription": settings.default_max_per_subscription,
            }
            created = self.db.table(self.table).insert(seed).execute()

            logger.info("global_settings_seeded", **seed)
            return GlobalSettings(**created.data[0])

        except Exception as e:
            logger.error("global_settings_get_failed", error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # UPDATE OPERATIONS
    # ===================

    def update_global_settings(self, data: GlobalSettingsUpdate) -> GlobalSettings:
        """
        Update subscription ceilings.

        Only provided fields are updated. Lowering a ceiling below current
        usage is allowed; existing subscriptions are untouched and new ones
        are denied until usage falls.

        Args:
            data: Fields to change

        Returns:
            Updated GlobalSettings
        """
        current = self.get_global_settings()
        changes = data.model_dump(exclude_none=True)

        if not changes:
            return current

        logger.info("updating_global_settings", **changes)

        try:
            self.db.table(self.table).update(changes).eq("id", current.id).execute()
        except Exception as e:
            logger.error("global_settings_update_failed", error=str(e))
            raise DatabaseError("update", str(e))

        return self.get_global_settings()

    def update_default_price(
        self,
        price: Decimal,
        apply_to_current: bool = True,
        today: Optional[date] = None
    ) -> DefaultPriceResult:
        """
        Change the default price per bundle.

        With apply_to_current, every period that has not ended yet takes the
        new price and the totals of its pending orders are recomputed, all
        in one transaction.

        Args:
            price: New price per bundle of 10
            apply_to_current: Also reprice current and future periods
            today: Reference date (defaults to today)

        Returns:
            DefaultPriceResult with counts of periods and orders touched
        """
        today = today or date.today()
        current = self.get_global_settings()

        logger.info(
            "updating_default_price",
            old_price=str(current.default_unit_price),
            new_price=str(price),
            apply_to_current=apply_to_current
        )

        periods_updated = 0
        orders_repriced = 0

        with Transaction(self.db, "update_default_price") as tx:
            tx.update(self.table, current.id, {"default_unit_price": float(price)})

            if apply_to_current:
                weeks = (
                    self.db.table("weeks")
                    .select("id")
                    .gte("week_end", today.isoformat())
                    .execute()
                ).data or []
                week_ids = [w["id"] for w in weeks]

                tx.update_many("weeks", week_ids, {"unit_price": float(price)})
                periods_updated = len(week_ids)

                if week_ids:
                    pending = (
                        self.db.table("orders")
                        .select("id, quantity")
                        .in_("week_id", week_ids)
                        .eq("status", DemandStatus.PENDING.value)
                        .execute()
                    ).data or []

                    for order in pending:
                        total = compute_total(order["quantity"], price)
                        tx.update("orders", order["id"], {"total": float(total)})
                    orders_repriced = len(pending)

        logger.info(
            "default_price_updated",
            price=str(price),
            periods_updated=periods_updated,
            orders_repriced=orders_repriced
        )

        return DefaultPriceResult(
            settings=self.get_global_settings(),
            periods_updated=periods_updated,
            orders_repriced=orders_repriced
        )


# Singleton instance
_settings_service: Optional[SettingsService] = None


def get_settings_service() -> SettingsService:
    """Get or create SettingsService instance."""
    global _settings_service
    if _settings_service is None:
        _settings_service = SettingsService()
    return _settings_service
