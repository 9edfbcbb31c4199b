"""
Subscription activated listener.

Also registered for the following FastSpring events, which carry the same
expanded subscription payload:
 - subscription.canceled
 - subscription.deactivated
 - subscription.payment.overdue
"""

import logging
from datetime import UTC, tzinfo

from ..core.events import SubscriptionEventData, WebhookEvent, timestamp_to_date
from ..core.interfaces import (
    SubscriptionPeriodRepository,
    SubscriptionRepository,
    UserRepository,
)
from ..infrastructure.database.models import (
    DEFAULT_SUBSCRIPTION_NAME,
    PeriodType,
    Subscription,
)
from .base import Listener

logger = logging.getLogger(__name__)


class SubscriptionActivated(Listener):
    """Mirrors a FastSpring subscription and its billing periods locally."""

    def __init__(
        self,
        users: UserRepository,
        subscriptions: SubscriptionRepository,
        periods: SubscriptionPeriodRepository,
        timezone: tzinfo = UTC,
    ):
        """
        Args:
            users: Lookup of users by FastSpring account id
            subscriptions: Subscription persistence
            periods: Subscription period persistence
            timezone: Timezone used to truncate period timestamps to dates
        """
        super().__init__(users)
        self.subscriptions = subscriptions
        self.periods = periods
        self.timezone = timezone

    async def handle(self, event: WebhookEvent) -> Subscription:
        """
        Find-or-create the user's subscription, overwrite it from the event
        and insert any billing periods not yet recorded.

        Raises:
            MalformedPayloadError: If the event data lacks required keys
            UserNotFoundError: If no user is linked to the event's account
        """
        data = SubscriptionEventData.from_event(event)

        user = await self.get_user_by_fastspring_id(data.account.id)
        name = data.tags.get("name")
        if name is None:
            name = DEFAULT_SUBSCRIPTION_NAME

        subscription = await self.subscriptions.get_by_user_and_name(user.id, name)
        if subscription is None:
            subscription = Subscription(user_id=user.id, name=name)
            logger.info(
                "Creating subscription %r for user %s", name, user.id,
                extra={"event_id": event.id, "user_id": user.id},
            )

        # Last event wins
        subscription.fastspring_id = data.id
        subscription.plan = data.product.product
        subscription.state = data.state
        subscription.currency = data.currency
        subscription.quantity = data.quantity
        subscription.interval_unit = data.interval_unit
        subscription.interval_length = data.interval_length

        subscription = await self.subscriptions.save(subscription)

        created = 0
        for instruction in data.instructions:
            if not instruction.is_complete:
                continue

            _, was_created = await self.periods.first_or_create(
                subscription_id=subscription.id,
                type=PeriodType.FASTSPRING.value,
                start_date=timestamp_to_date(instruction.period_start, self.timezone),
                end_date=timestamp_to_date(instruction.period_end, self.timezone),
            )
            created += was_created

        logger.info(
            "Applied %s to subscription %s (state=%s, %d new period(s))",
            event.type, subscription.id, subscription.state, created,
            extra={
                "event_id": event.id,
                "event_type": event.type,
                "user_id": user.id,
                "subscription_id": subscription.id,
            },
        )
        return subscription
