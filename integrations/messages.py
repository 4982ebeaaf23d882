"""
Centralized notification templates with i18n support.

Customer push messages come in title/body pairs; operator alerts are
single Telegram Markdown texts.

Usage:
    from integrations.messages import get_message

    body = get_message("trimmed_body", original=30, new=20)
"""

from config.settings import settings

MESSAGES = {
    "en": {
        # Customer push notifications
        "stock_declared_title": "Fresh stock is in",
        "stock_declared_body": "{stock} available for the week of {week_start} at {price} per 10. Order now!",

        "delivered_title": "Your order has arrived",
        "delivered_body": "Orders for the week of {week_start} are ready for pickup.",

        "trimmed_title": "Your subscription order was adjusted",
        "trimmed_body": "Demand was higher than stock this week, so your order went from {original} to {new}.",

        "delivery_scheduled_title": "Delivery scheduled",
        "delivery_scheduled_body": "This week's delivery is scheduled for {delivery_date}{time_suffix}.",

        "payment_reminder_title": "Payment reminder",
        "payment_reminder_body": "Your order of {quantity} ({total}) is still waiting for payment.",

        # Operator alerts (Telegram)
        "residual_deficit": """⚠️ *Subscription demand exceeds stock*

Week: {week_start}
Stock: {stock}
Committed: {committed}
Deficit: {deficit}

Every subscription order is already at the minimum of 10.""",

        "cycle_advance_failed": """❌ *Cycle advance failed*

Date: {today}
Error: {error}

The operation was rolled back. Retry the cron job.""",

        "telegram_test": """✅ *Telegram Integration Test*

Connection successful! Allocation alerts are now configured.""",
    },
    "es": {
        "stock_declared_title": "Llegó producto fresco",
        "stock_declared_body": "{stock} disponibles para la semana del {week_start} a {price} por 10. ¡Pide ahora!",

        "delivered_title": "Tu pedido llegó",
        "delivered_body": "Los pedidos de la semana del {week_start} están listos para recoger.",

        "trimmed_title": "Ajustamos tu pedido de suscripción",
        "trimmed_body": "La demanda superó el stock esta semana, tu pedido pasó de {original} a {new}.",

        "delivery_scheduled_title": "Entrega programada",
        "delivery_scheduled_body": "La entrega de esta semana está programada para el {delivery_date}{time_suffix}.",

        "payment_reminder_title": "Recordatorio de pago",
        "payment_reminder_body": "Tu pedido de {quantity} ({total}) sigue pendiente de pago.",

        "residual_deficit": """⚠️ *La demanda de suscripciones supera el stock*

Semana: {week_start}
Stock: {stock}
Comprometido: {committed}
Déficit: {deficit}

Todos los pedidos de suscripción ya están en el mínimo de 10.""",

        "cycle_advance_failed": """❌ *Falló el avance de semana*

Fecha: {today}
Error: {error}

La operación fue revertida. Reintenta el cron.""",

        "telegram_test": """✅ *Prueba de integración con Telegram*

¡Conexión exitosa! Las alertas de asignación están configuradas.""",
    },
}


def get_message(key: str, **kwargs) -> str:
    """
    Get translated message template and format with kwargs.

    Args:
        key: Message template key
        **kwargs: Format arguments for the template

    Returns:
        Formatted message string in the configured language
    """
    lang_messages = MESSAGES.get(get_lang(), MESSAGES["en"])
    template = lang_messages.get(key, MESSAGES["en"].get(key, key))
    try:
        return template.format(**kwargs)
    except KeyError:
        # Return template as-is if formatting fails
        return template


def get_lang() -> str:
    """Get current language setting."""
    return settings.notification_language
