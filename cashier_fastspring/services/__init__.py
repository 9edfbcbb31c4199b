"""Application services."""

from .webhook_dispatcher import WebhookDispatcher, build_dispatcher, default_listeners

__all__ = [
    "WebhookDispatcher",
    "build_dispatcher",
    "default_listeners",
]
