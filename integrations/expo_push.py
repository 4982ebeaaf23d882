"""
Expo push notification transport.

Posts messages to the Expo push API in batches (Expo accepts at most 100
messages per request). Tokens Expo reports as DeviceNotRegistered are
returned so the caller can prune them.
"""

from typing import Any, Iterator
import requests
import structlog

from config.settings import settings
from exceptions import PushDeliveryError

logger = structlog.get_logger(__name__)


def chunk(items: list, size: int) -> Iterator[list]:
    """Yield consecutive slices of at most size items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def build_messages(tokens: list[str], title: str, body: str, data: dict[str, Any]) -> list[dict]:
    """One Expo message per device token."""
    return [
        {
            "to": token,
            "title": title,
            "body": body,
            "data": data,
            "sound": "default",
        }
        for token in tokens
    ]


def send_batch(messages: list[dict]) -> list[dict]:
    """
    Send one batch to Expo.

    Args:
        messages: At most expo_batch_size Expo message dicts

    Returns:
        Expo push tickets, one per message

    Raises:
        PushDeliveryError: On HTTP failure or a request-level Expo error
    """
    try:
        response = requests.post(
            settings.expo_push_url,
            json=messages,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=15,
        )
        response.raise_for_status()
        result = response.json()

    except requests.exceptions.RequestException as e:
        logger.error("expo_push_request_failed", error=str(e), batch_size=len(messages))
        raise PushDeliveryError(f"Failed to reach Expo: {str(e)}")

    if result.get("errors"):
        logger.error("expo_push_rejected", errors=result["errors"])
        raise PushDeliveryError("Expo rejected the batch", details={"errors": result["errors"]})

    return result.get("data", [])


def send_push(tokens: list[str], title: str, body: str, data: dict[str, Any]) -> dict:
    """
    Send the same notification to every token, batching as Expo requires.

    A failed batch is logged and counted; later batches are still sent.

    Returns:
        dict with sent, failed and unregistered (tokens to prune)
    """
    sent = 0
    failed = 0
    unregistered: list[str] = []

    for batch in chunk(build_messages(tokens, title, body, data), settings.expo_batch_size):
        try:
            tickets = send_batch(batch)
        except PushDeliveryError as e:
            failed += len(batch)
            logger.warning("expo_push_batch_failed", batch_size=len(batch), error=e.message)
            continue

        for message, ticket in zip(batch, tickets):
            if ticket.get("status") == "ok":
                sent += 1
                continue
            failed += 1
            if ticket.get("details", {}).get("error") == "DeviceNotRegistered":
                unregistered.append(message["to"])

    logger.info(
        "expo_push_sent",
        tokens=len(tokens),
        sent=sent,
        failed=failed,
        unregistered=len(unregistered)
    )
    return {"sent": sent, "failed": failed, "unregistered": unregistered}
