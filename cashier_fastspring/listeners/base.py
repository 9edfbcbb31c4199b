"""Base class for FastSpring webhook event listeners."""

from abc import ABC, abstractmethod
from typing import Any

from ..core.events import WebhookEvent
from ..core.exceptions import UserNotFoundError
from ..core.interfaces import UserRepository
from ..infrastructure.database.models import User


class Listener(ABC):
    """
    Reacts to one kind of FastSpring webhook event.

    Listeners write through their repositories and never commit; the
    dispatcher wraps each event in its own transaction.
    """

    def __init__(self, users: UserRepository):
        self.users = users

    async def get_user_by_fastspring_id(self, fastspring_id: str) -> User:
        """
        Resolve the local user linked to a FastSpring account.

        Raises:
            UserNotFoundError: If no user carries this FastSpring id
        """
        user = await self.users.get_by_fastspring_id(fastspring_id)
        if user is None:
            raise UserNotFoundError(fastspring_id)
        return user

    @abstractmethod
    async def handle(self, event: WebhookEvent) -> Any:
        """Apply the event."""
        ...
