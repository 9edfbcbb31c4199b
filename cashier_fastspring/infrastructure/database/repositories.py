"""
SQLAlchemy implementations of the repository interfaces.

Repositories flush but never commit; the caller owns the transaction.
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.interfaces.repositories import (
    SubscriptionPeriodRepository,
    SubscriptionRepository,
    UserRepository,
)
from .models import Subscription, SubscriptionPeriod, User

logger = logging.getLogger(__name__)


class SqlAlchemyUserRepository(UserRepository):
    """User lookups over an async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_fastspring_id(self, fastspring_id: str) -> User | None:
        # Row lock serialises concurrent events for the same user
        result = await self.session.execute(
            select(User).where(User.fastspring_id == fastspring_id).with_for_update()
        )
        return result.scalar_one_or_none()


class SqlAlchemySubscriptionRepository(SubscriptionRepository):
    """Subscription persistence over an async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user_and_name(self, user_id: str, name: str) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription).where(
                Subscription.user_id == user_id,
                Subscription.name == name,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, subscription: Subscription) -> Subscription:
        self.session.add(subscription)
        await self.session.flush()
        return subscription


class SqlAlchemySubscriptionPeriodRepository(SubscriptionPeriodRepository):
    """Insert-only period persistence over an async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def first_or_create(
        self,
        subscription_id: str,
        type: str,
        start_date: date,
        end_date: date,
    ) -> tuple[SubscriptionPeriod, bool]:
        result = await self.session.execute(
            select(SubscriptionPeriod).where(
                SubscriptionPeriod.subscription_id == subscription_id,
                SubscriptionPeriod.type == type,
                SubscriptionPeriod.start_date == start_date,
                SubscriptionPeriod.end_date == end_date,
            )
        )
        period = result.scalar_one_or_none()
        if period is not None:
            return period, False

        period = SubscriptionPeriod(
            subscription_id=subscription_id,
            type=type,
            start_date=start_date,
            end_date=end_date,
        )
        self.session.add(period)
        await self.session.flush()
        logger.debug(
            "Created %s period %s..%s for subscription %s",
            type, start_date, end_date, subscription_id,
        )
        return period, True
