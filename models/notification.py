"""
Notification schemas.
"""

from pydantic import Field
from typing import Optional, Any
from enum import Enum

from models.base import BaseSchema


class NotificationChannel(str, Enum):
    """Delivery channels an actor can have enabled."""
    PUSH = "push"


class NotificationMessage(BaseSchema):
    """A customer-facing message, independent of channel."""

    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=2000)
    data: dict[str, Any] = Field(default_factory=dict, description="Deep-link payload")


class DispatchResult(BaseSchema):
    """What one notify_* call achieved."""

    event: str
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    channel: Optional[NotificationChannel] = None
