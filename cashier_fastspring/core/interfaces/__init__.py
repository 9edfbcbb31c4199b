# Interfaces (Abstract Contracts)
# Infrastructure implements these interfaces
from .repositories import SubscriptionPeriodRepository, SubscriptionRepository, UserRepository

__all__ = [
    "UserRepository",
    "SubscriptionRepository",
    "SubscriptionPeriodRepository",
]
