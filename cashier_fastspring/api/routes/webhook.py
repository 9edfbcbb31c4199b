"""
FastSpring webhook route.
"""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ...adapters.payments import (
    FastSpringAdapter,
    FastSpringWebhookError,
    create_fastspring_adapter,
)
from ...infrastructure.database.connection import get_db
from ...services.webhook_dispatcher import build_dispatcher
from ..middleware.rate_limit import get_rate_limit, limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fastspring", tags=["fastspring"])


def get_fastspring_adapter() -> FastSpringAdapter:
    """Dependency providing a FastSpring adapter configured from settings."""
    return create_fastspring_adapter()


@router.post("/webhook", response_class=PlainTextResponse)
@limiter.limit(get_rate_limit("webhook"))
async def handle_webhook(
    request: Request,
    x_fs_signature: Annotated[str | None, Header(alias="X-FS-Signature")] = None,
    adapter: FastSpringAdapter = Depends(get_fastspring_adapter),
    db: AsyncSession = Depends(get_db),
) -> str:
    """
    Handle FastSpring webhook deliveries.

    A delivery carries one or more events. The response body lists the ids
    of the applied events, one per line; FastSpring redelivers any event
    whose id is missing from the response.
    """
    body = await request.body()

    if not adapter.hmac_secret:
        # 403 rather than 5xx so FastSpring does not hammer a misconfigured endpoint
        logger.error("Webhook rejected: FASTSPRING_HMAC_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Webhook verification not configured",
        )

    if not x_fs_signature:
        logger.warning("Webhook received without signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook signature",
        )

    if not adapter.verify_webhook_signature(body, x_fs_signature):
        logger.error("Invalid webhook signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Invalid JSON in webhook payload: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )

    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )

    try:
        events = adapter.parse_webhook_events(payload)
    except FastSpringWebhookError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    dispatcher = build_dispatcher(db)
    acknowledged = await dispatcher.process(events)

    request.state.events_received = len(events)
    request.state.events_acknowledged = len(acknowledged)

    if len(acknowledged) < len(events):
        logger.warning(
            "Webhook delivery partially applied: %d of %d event(s) acknowledged",
            len(acknowledged), len(events),
        )
    else:
        logger.info("Webhook delivery applied: %d event(s)", len(acknowledged))

    return "\n".join(acknowledged)
