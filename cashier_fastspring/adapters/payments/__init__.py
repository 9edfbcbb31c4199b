"""Payment adapters for billing and subscription management."""

from .fastspring_adapter import (
    FastSpringAdapter,
    FastSpringAPIError,
    FastSpringAuthError,
    FastSpringError,
    FastSpringWebhookError,
    create_fastspring_adapter,
)

__all__ = [
    "FastSpringAdapter",
    "FastSpringError",
    "FastSpringAPIError",
    "FastSpringWebhookError",
    "FastSpringAuthError",
    "create_fastspring_adapter",
]
