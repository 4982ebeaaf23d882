"""
Customer notification service.

The Notifier is called synchronously by allocation operations after they
commit. Every public notify_* method is best-effort: failures are logged
and swallowed so a notification problem never fails an inventory operation.

Channel selection is an explicit capability query (get_enabled_channels);
dispatch goes through one ChannelSender per channel.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Optional
import structlog

from config import get_supabase_client
from config.settings import settings
from models.period import AllocationPeriod
from models.demand import DemandStatus
from models.notification import NotificationChannel, NotificationMessage, DispatchResult
from integrations import expo_push
from integrations.messages import get_message

logger = structlog.get_logger(__name__)


# ===================
# CHANNELS
# ===================

class ChannelSender(ABC):
    """Delivers one message to a set of actors over a single channel."""

    channel: NotificationChannel

    @abstractmethod
    def send(self, actor_ids: list[str], message: NotificationMessage) -> dict:
        """
        Returns:
            dict with at least sent and failed counts
        """


class ExpoPushChannel(ChannelSender):
    """Push notifications through Expo, one message per registered device."""

    channel = NotificationChannel.PUSH

    def __init__(self, db):
        self.db = db
        self.table = "push_tokens"

    def send(self, actor_ids: list[str], message: NotificationMessage) -> dict:
        rows = (
            self.db.table(self.table)
            .select("token")
            .in_("user_id", actor_ids)
            .execute()
        ).data or []
        tokens = sorted({row["token"] for row in rows})

        if not tokens:
            return {"sent": 0, "failed": 0}

        result = expo_push.send_push(tokens, message.title, message.body, message.data)

        if result["unregistered"]:
            self.db.table(self.table).delete().in_("token", result["unregistered"]).execute()
            logger.info("push_tokens_pruned", count=len(result["unregistered"]))

        return result


# ===================
# NOTIFIER
# ===================

class Notifier:
    """
    Sends customer notifications for allocation events.

    Admin users are never notified.
    """

    def __init__(self, senders: Optional[list[ChannelSender]] = None):
        self.db = get_supabase_client()
        if senders is None:
            senders = [ExpoPushChannel(self.db)]
        self.senders = {sender.channel: sender for sender in senders}

    # ===================
    # CAPABILITIES
    # ===================

    def get_enabled_channels(self, actor_ids: list[str]) -> dict[str, set[NotificationChannel]]:
        """
        Channels each actor can receive on.

        Admins and unknown actors are left out entirely; customers map to
        an empty set when no channel is enabled.
        """
        if not actor_ids:
            return {}

        users = (
            self.db.table("users")
            .select("id, is_admin")
            .in_("id", list(actor_ids))
            .execute()
        ).data or []
        customers = [u["id"] for u in users if not u.get("is_admin")]

        if not customers:
            return {}

        tokens = (
            self.db.table("push_tokens")
            .select("user_id")
            .in_("user_id", customers)
            .execute()
        ).data or []
        with_push = {row["user_id"] for row in tokens}

        return {
            actor_id: {NotificationChannel.PUSH} if actor_id in with_push else set()
            for actor_id in customers
        }

    # ===================
    # EVENTS
    # ===================

    def notify_stock_declared(self, period: AllocationPeriod) -> DispatchResult:
        """Tell every customer that the period has stock."""
        return self._safely("stock_declared", lambda: self._dispatch(
            "stock_declared",
            self._customer_ids(),
            NotificationMessage(
                title=get_message("stock_declared_title"),
                body=get_message(
                    "stock_declared_body",
                    stock=period.available_stock,
                    week_start=period.week_start.isoformat(),
                    price=f"{period.unit_price:.2f}"
                ),
                data={"type": "stock_declared", "period_id": period.id},
            )
        ))

    def notify_delivered(self, period: AllocationPeriod) -> DispatchResult:
        """Tell owners of the period's orders that they can pick up."""
        return self._safely("delivered", lambda: self._dispatch(
            "delivered",
            self._order_owner_ids(period.id),
            NotificationMessage(
                title=get_message("delivered_title"),
                body=get_message("delivered_body", week_start=period.week_start.isoformat()),
                data={"type": "delivered", "period_id": period.id},
            )
        ))

    def notify_trimmed(self, owner_id: str, original: int, new: int) -> DispatchResult:
        """Tell a subscriber their order was reduced this period."""
        return self._safely("trimmed", lambda: self._dispatch(
            "trimmed",
            [owner_id],
            NotificationMessage(
                title=get_message("trimmed_title"),
                body=get_message("trimmed_body", original=original, new=new),
                data={"type": "trimmed", "original_quantity": original, "new_quantity": new},
            )
        ))

    def notify_delivery_scheduled(self, period: AllocationPeriod) -> DispatchResult:
        """Tell owners of the period's orders when delivery happens."""
        delivery_date = period.delivery_date.strftime("%Y-%m-%d") if period.delivery_date else "-"
        time_suffix = f" ({period.delivery_time})" if period.delivery_time else ""

        return self._safely("delivery_scheduled", lambda: self._dispatch(
            "delivery_scheduled",
            self._order_owner_ids(period.id),
            NotificationMessage(
                title=get_message("delivery_scheduled_title"),
                body=get_message(
                    "delivery_scheduled_body",
                    delivery_date=delivery_date,
                    time_suffix=time_suffix
                ),
                data={"type": "delivery_scheduled", "period_id": period.id},
            )
        ))

    def notify_payment_reminder(self) -> DispatchResult:
        """Remind owners of delivered, unpaid orders in delivered periods."""
        return self._safely("payment_reminder", self._send_payment_reminders)

    # ===================
    # INTERNALS
    # ===================

    def _send_payment_reminders(self) -> DispatchResult:
        weeks = (
            self.db.table("weeks")
            .select("id")
            .eq("all_orders_delivered", True)
            .execute()
        ).data or []
        week_ids = [w["id"] for w in weeks]

        if not week_ids:
            return DispatchResult(event="payment_reminder")

        orders = (
            self.db.table("orders")
            .select("*")
            .in_("week_id", week_ids)
            .eq("status", DemandStatus.DELIVERED.value)
            .eq("is_paid", False)
            .execute()
        ).data or []

        result = DispatchResult(event="payment_reminder")
        for order in orders:
            outcome = self._dispatch(
                "payment_reminder",
                [order["user_id"]],
                NotificationMessage(
                    title=get_message("payment_reminder_title"),
                    body=get_message(
                        "payment_reminder_body",
                        quantity=order["quantity"],
                        total=f"{float(order['total']):.2f}"
                    ),
                    data={"type": "payment_reminder", "order_id": order["id"]},
                )
            )
            result.recipients += outcome.recipients
            result.sent += outcome.sent
            result.failed += outcome.failed

        logger.info("payment_reminders_sent", orders=len(orders), sent=result.sent)
        return result

    def _dispatch(
        self,
        event: str,
        actor_ids: list[str],
        message: NotificationMessage
    ) -> DispatchResult:
        result = DispatchResult(event=event)

        if not settings.notifications_enabled:
            logger.debug("notifications_disabled", notification_event=event)
            return result

        by_channel: dict[NotificationChannel, list[str]] = defaultdict(list)
        for actor_id, channels in self.get_enabled_channels(actor_ids).items():
            result.recipients += 1
            for channel in channels:
                by_channel[channel].append(actor_id)

        for channel, recipients in by_channel.items():
            sender = self.senders.get(channel)
            if sender is None:
                continue
            outcome = sender.send(recipients, message)
            result.channel = channel
            result.sent += outcome.get("sent", 0)
            result.failed += outcome.get("failed", 0)

        logger.info(
            "notification_dispatched",
            notification_event=event,
            recipients=result.recipients,
            sent=result.sent,
            failed=result.failed
        )
        return result

    def _safely(self, event: str, send) -> DispatchResult:
        try:
            return send()
        except Exception as e:
            logger.error("notification_failed", notification_event=event, error=str(e))
            return DispatchResult(event=event)

    def _customer_ids(self) -> list[str]:
        rows = (
            self.db.table("users")
            .select("id")
            .eq("is_admin", False)
            .execute()
        ).data or []
        return [row["id"] for row in rows]

    def _order_owner_ids(self, period_id: str) -> list[str]:
        rows = (
            self.db.table("orders")
            .select("user_id")
            .eq("week_id", period_id)
            .execute()
        ).data or []
        return sorted({row["user_id"] for row in rows})


# Singleton instance
_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Get or create Notifier instance."""
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier
