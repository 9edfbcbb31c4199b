"""
Rate limiting using slowapi.

Limits are keyed by client IP. Storage is Redis when ``redis_url`` is
configured, otherwise per-process memory.
"""

import ipaddress
import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from ...infrastructure.config.settings import settings

logger = logging.getLogger(__name__)


def _is_public_ip(value: str) -> bool:
    """Return True if *value* is a valid, non-private IP address.

    Private and loopback addresses in forwarding headers are trivially
    spoofable and are ignored.
    """
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    return not (addr.is_private or addr.is_loopback or addr.is_link_local)


def _get_real_ip(request: Request) -> str:
    """Extract the client IP from proxy headers, falling back to the remote address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First entry is the original client
        candidate = forwarded.split(",")[0].strip()
        if _is_public_ip(candidate):
            return candidate
    return get_remote_address(request)


# Format: "count/period" where period can be: second, minute, hour, day
RATE_LIMITS = {
    "webhook": "100/minute",
    "default": "100/minute",
}

if not settings.redis_url:
    logger.warning(
        "Rate limiter using in-memory storage - not suitable for multi-worker production"
    )

limiter = Limiter(
    key_func=_get_real_ip,
    storage_uri=settings.redis_url or "memory://",
    default_limits=[RATE_LIMITS["default"]],
)


def get_rate_limit(endpoint: str) -> str:
    """
    Get rate limit configuration for a specific endpoint.

    Example:
        >>> get_rate_limit("webhook")
        "100/minute"
        >>> get_rate_limit("unknown")
        "100/minute"
    """
    return RATE_LIMITS.get(endpoint, RATE_LIMITS["default"])
