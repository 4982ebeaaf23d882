"""
Telegram bot integration for operator alerts.

Sends formatted alert messages to the operators' Telegram chat when the
allocation engine hits a condition a human should look at (residual
subscription deficit, failed cycle advance).
"""

from typing import Optional
import requests
import structlog

from config.settings import settings
from exceptions import TelegramError
from integrations.messages import get_message

logger = structlog.get_logger(__name__)


def get_telegram_config() -> tuple[Optional[str], Optional[str]]:
    """
    Get Telegram configuration from settings.

    Returns:
        tuple: (bot_token, chat_id)
    """
    bot_token = settings.telegram_bot_token
    chat_id = settings.telegram_chat_id

    if not bot_token or not chat_id:
        logger.warning(
            "telegram_not_configured",
            has_token=bool(bot_token),
            has_chat_id=bool(chat_id)
        )

    return bot_token, chat_id


def send_message(message: str, parse_mode: str = "Markdown") -> bool:
    """
    Send message to Telegram.

    Args:
        message: Message text to send
        parse_mode: Telegram parse mode (Markdown or HTML)

    Returns:
        True if sent, False if Telegram is not configured

    Raises:
        TelegramError: If send fails
    """
    bot_token, chat_id = get_telegram_config()

    if not bot_token or not chat_id:
        logger.warning("telegram_not_configured_skipping_send")
        return False

    url = f"https://api.telegram.org/bot{bot_token}/sendMessage"

    payload = {
        "chat_id": chat_id,
        "text": message,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    }

    try:
        logger.info("sending_telegram_message", chat_id=chat_id)

        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()

        result = response.json()

        if not result.get("ok"):
            error_msg = result.get("description", "Unknown error")
            logger.error("telegram_api_error", error=error_msg)
            raise TelegramError(f"Telegram API error: {error_msg}")

        logger.info("telegram_message_sent", message_id=result.get("result", {}).get("message_id"))
        return True

    except requests.exceptions.RequestException as e:
        logger.error("telegram_request_failed", error=str(e))
        raise TelegramError(f"Failed to send Telegram message: {str(e)}")


def send_operator_alert(key: str, **kwargs) -> bool:
    """
    Send a templated operator alert.

    Never raises: alerts ride along with allocation operations that have
    already committed.

    Args:
        key: Template key in integrations.messages
        **kwargs: Template arguments

    Returns:
        True if the alert was delivered
    """
    try:
        return send_message(get_message(key, **kwargs))
    except TelegramError as e:
        logger.warning("operator_alert_failed", alert=key, error=e.message)
        return False


def test_connection() -> dict:
    """
    Test Telegram bot connection.

    Returns:
        dict with bot info and connection status

    Raises:
        TelegramError: If connection fails
    """
    bot_token, chat_id = get_telegram_config()

    if not bot_token:
        return {
            "configured": False,
            "error": "TELEGRAM_BOT_TOKEN not set"
        }

    if not chat_id:
        return {
            "configured": False,
            "error": "TELEGRAM_CHAT_ID not set"
        }

    # Get bot info
    url = f"https://api.telegram.org/bot{bot_token}/getMe"

    try:
        response = requests.get(url, timeout=10)
        response.raise_for_status()

        result = response.json()

        if not result.get("ok"):
            error_msg = result.get("description", "Unknown error")
            raise TelegramError(f"Telegram API error: {error_msg}")

        bot_info = result.get("result", {})

        send_message(get_message("telegram_test"))

        return {
            "configured": True,
            "bot_username": bot_info.get("username"),
            "bot_name": bot_info.get("first_name"),
            "chat_id": chat_id,
            "test_message_sent": True,
        }

    except requests.exceptions.RequestException as e:
        logger.error("telegram_connection_test_failed", error=str(e))
        raise TelegramError(f"Failed to test Telegram connection: {str(e)}")
