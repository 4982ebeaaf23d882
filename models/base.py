"""
Base schemas and mixins for all models.

Also holds the bundle arithmetic shared by orders, subscriptions and stock.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


# Every quantity is tracked in whole bundles of this many items.
BUNDLE_SIZE = 10


def is_bundle_quantity(quantity: int, allow_zero: bool = False) -> bool:
    """
    Check that quantity is a whole number of bundles.

    Args:
        quantity: Item count to check
        allow_zero: Accept 0 (stock figures), reject it for orders

    Returns:
        True if quantity is a non-negative multiple of BUNDLE_SIZE
        (strictly positive unless allow_zero)
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        return False
    if quantity < 0 or (quantity == 0 and not allow_zero):
        return False
    return quantity % BUNDLE_SIZE == 0


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Add timestamps to response models."""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
