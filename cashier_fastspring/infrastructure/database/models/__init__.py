"""
SQLAlchemy database models.
"""

from .base import Base, TimestampMixin
from .subscription import (
    DEFAULT_SUBSCRIPTION_NAME,
    PeriodType,
    Subscription,
    SubscriptionPeriod,
    SubscriptionState,
)
from .user import User
from .webhook_event import ProcessedWebhookEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Subscription",
    "SubscriptionPeriod",
    "SubscriptionState",
    "PeriodType",
    "DEFAULT_SUBSCRIPTION_NAME",
    "ProcessedWebhookEvent",
]
