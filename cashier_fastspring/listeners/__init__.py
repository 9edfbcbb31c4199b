"""FastSpring webhook event listeners."""

from .base import Listener
from .subscription_activated import SubscriptionActivated

__all__ = [
    "Listener",
    "SubscriptionActivated",
]
