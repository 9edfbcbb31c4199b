"""Repository interfaces for data access."""

from abc import ABC, abstractmethod
from datetime import date

from ...infrastructure.database.models import Subscription, SubscriptionPeriod, User


class UserRepository(ABC):
    """Abstract repository for User entities."""

    @abstractmethod
    async def get_by_fastspring_id(self, fastspring_id: str) -> User | None:
        """Get the user linked to a FastSpring account."""
        ...


class SubscriptionRepository(ABC):
    """Abstract repository for Subscription entities."""

    @abstractmethod
    async def get_by_user_and_name(self, user_id: str, name: str) -> Subscription | None:
        """Get a user's subscription by its name."""
        ...

    @abstractmethod
    async def save(self, subscription: Subscription) -> Subscription:
        """Insert or update a subscription; the id is populated on return."""
        ...


class SubscriptionPeriodRepository(ABC):
    """Abstract repository for SubscriptionPeriod entities."""

    @abstractmethod
    async def first_or_create(
        self,
        subscription_id: str,
        type: str,
        start_date: date,
        end_date: date,
    ) -> tuple[SubscriptionPeriod, bool]:
        """Return the period with this exact key, creating it if absent.

        The boolean is True when a new row was created.
        """
        ...
