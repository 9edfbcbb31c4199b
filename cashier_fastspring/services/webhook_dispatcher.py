"""
Routes FastSpring webhook events to their listeners.

Each event is applied in its own transaction together with a
ProcessedWebhookEvent row keyed by the FastSpring event id, so an event is
applied at most once even when FastSpring redelivers it. Only events whose
transaction committed are acknowledged; FastSpring retries the rest.
"""

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.events import WebhookEvent, WebhookEventType
from ..core.exceptions import CashierFastspringError
from ..infrastructure.config import get_settings
from ..infrastructure.database.models import ProcessedWebhookEvent
from ..infrastructure.database.repositories import (
    SqlAlchemySubscriptionPeriodRepository,
    SqlAlchemySubscriptionRepository,
    SqlAlchemyUserRepository,
)
from ..listeners import Listener, SubscriptionActivated

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Applies webhook events through registered listeners."""

    def __init__(self, session: AsyncSession, listeners: dict[str, Listener]):
        self.session = session
        self.listeners = listeners

    async def _already_processed(self, event_id: str) -> bool:
        return await self.session.get(ProcessedWebhookEvent, event_id) is not None

    async def process(self, events: Iterable[WebhookEvent]) -> list[str]:
        """
        Apply events in order.

        Returns:
            Ids of the events that are applied and may be acknowledged
        """
        acknowledged: list[str] = []

        for event in events:
            log_extra = {"event_id": event.id, "event_type": event.type}

            if await self._already_processed(event.id):
                logger.info("Duplicate webhook event %s - skipping", event.id, extra=log_extra)
                acknowledged.append(event.id)
                continue

            listener = self.listeners.get(event.type)
            try:
                if listener is None:
                    logger.warning(
                        "No listener registered for webhook event type %s", event.type,
                        extra=log_extra,
                    )
                else:
                    await listener.handle(event)

                self.session.add(ProcessedWebhookEvent(event_id=event.id, event_type=event.type))
                await self.session.commit()
            except (CashierFastspringError, SQLAlchemyError) as e:
                await self.session.rollback()
                logger.error(
                    "Webhook event %s (%s) failed: %s", event.id, event.type, e,
                    extra=log_extra,
                    exc_info=isinstance(e, SQLAlchemyError),
                )
                continue

            acknowledged.append(event.id)

        return acknowledged


def default_listeners(session: AsyncSession) -> dict[str, Listener]:
    """Build the default event type -> listener registry over one session."""
    subscription_activated = SubscriptionActivated(
        users=SqlAlchemyUserRepository(session),
        subscriptions=SqlAlchemySubscriptionRepository(session),
        periods=SqlAlchemySubscriptionPeriodRepository(session),
        timezone=get_settings().period_timezone,
    )
    return {
        WebhookEventType.SUBSCRIPTION_ACTIVATED.value: subscription_activated,
        WebhookEventType.SUBSCRIPTION_CANCELED.value: subscription_activated,
        WebhookEventType.SUBSCRIPTION_DEACTIVATED.value: subscription_activated,
        WebhookEventType.SUBSCRIPTION_PAYMENT_OVERDUE.value: subscription_activated,
    }


def build_dispatcher(session: AsyncSession) -> WebhookDispatcher:
    """Create a dispatcher wired to SQLAlchemy repositories."""
    return WebhookDispatcher(session, default_listeners(session))
