"""
FastSpring billing adapter.

Provides webhook signature verification, webhook envelope parsing and a
small async client for the FastSpring subscriptions API.
"""

import base64
import hashlib
import hmac
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ...core.events import WebhookEnvelope, WebhookEvent
from ...core.exceptions import CashierFastspringError
from ...infrastructure.config.settings import settings

logger = logging.getLogger(__name__)


# Custom Exceptions
class FastSpringError(CashierFastspringError):
    """Base exception for FastSpring adapter errors."""

    pass


class FastSpringAPIError(FastSpringError):
    """Raised when the FastSpring API returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class FastSpringWebhookError(FastSpringError):
    """Raised when webhook verification or parsing fails."""

    pass


class FastSpringAuthError(FastSpringError):
    """Raised when API credentials are missing."""

    pass


class FastSpringAdapter:
    """
    FastSpring adapter for subscription billing.

    The API uses HTTP basic authentication with the API username and
    password generated in the FastSpring dashboard. Webhooks are signed
    with an HMAC secret configured per webhook.
    """

    SIGNATURE_HEADER = "X-FS-Signature"

    def __init__(
        self,
        api_username: str | None = None,
        api_password: str | None = None,
        hmac_secret: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
    ):
        """
        Initialize FastSpring adapter.

        Args:
            api_username: FastSpring API username (defaults to settings)
            api_password: FastSpring API password (defaults to settings)
            hmac_secret: Webhook HMAC secret (defaults to settings)
            base_url: API base URL (defaults to settings)
            timeout: Request timeout in seconds
        """
        self.api_username = api_username or settings.fastspring_api_username
        self.api_password = api_password or settings.fastspring_api_password
        self.hmac_secret = hmac_secret or settings.fastspring_hmac_secret
        self.base_url = (base_url or settings.fastspring_api_base_url).rstrip("/")
        self.timeout = timeout

    def _get_auth(self) -> httpx.BasicAuth:
        if not self.api_username or not self.api_password:
            raise FastSpringAuthError(
                "FastSpring API credentials not configured. "
                "Set fastspring_api_username and fastspring_api_password in settings."
            )
        return httpx.BasicAuth(self.api_username, self.api_password)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make HTTP request to the FastSpring API.

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint path
            data: JSON request body
            params: Query string parameters

        Returns:
            API response as dictionary

        Raises:
            FastSpringAPIError: If the request fails
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        auth = self._get_auth()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, auth=auth) as client:
                logger.info("Making %s request to %s", method, endpoint)
                response = await client.request(
                    method,
                    url,
                    json=data,
                    params=params,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()

                if response.status_code == 204 or not response.content:
                    return {}
                return response.json()

        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            logger.error(
                "FastSpring API error %s on %s %s: %s",
                e.response.status_code, method, endpoint, detail,
            )
            raise FastSpringAPIError(
                f"API request failed with status {e.response.status_code}: {detail}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error("HTTP request error on %s %s: %s", method, endpoint, e)
            raise FastSpringAPIError(f"Request failed: {e}") from e

    @staticmethod
    def _first_subscription_result(response: dict[str, Any], subscription_id: str) -> dict[str, Any]:
        """Extract one subscription result from a batch-style response."""
        for item in response.get("subscriptions", []):
            if item.get("subscription") == subscription_id:
                if item.get("result") == "error":
                    raise FastSpringAPIError(
                        f"Subscription {subscription_id} operation failed: {item.get('error')}"
                    )
                return item
        return response

    async def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        """
        Get subscription details by FastSpring subscription id.

        Raises:
            FastSpringAPIError: If API request fails
        """
        logger.info("Fetching subscription %s", subscription_id)
        return await self._make_request("GET", f"subscriptions/{subscription_id}")

    async def cancel_subscription(self, subscription_id: str, immediate: bool = False) -> dict[str, Any]:
        """
        Cancel a subscription.

        By default the subscription stays active until the end of the
        current period; ``immediate=True`` deactivates it right away.

        Raises:
            FastSpringAPIError: If API request fails
        """
        logger.info("Cancelling subscription %s (immediate=%s)", subscription_id, immediate)
        params = {"billingPeriod": 0} if immediate else None
        response = await self._make_request(
            "DELETE", f"subscriptions/{subscription_id}", params=params
        )
        return self._first_subscription_result(response, subscription_id)

    async def uncancel_subscription(self, subscription_id: str) -> dict[str, Any]:
        """
        Revert a pending cancellation.

        Raises:
            FastSpringAPIError: If API request fails
        """
        logger.info("Uncancelling subscription %s", subscription_id)
        response = await self._make_request(
            "POST",
            "subscriptions",
            data={"subscriptions": [{"subscription": subscription_id, "deactivation": None}]},
        )
        return self._first_subscription_result(response, subscription_id)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """
        Verify a webhook signature.

        FastSpring signs the raw request body with HMAC SHA256 and sends the
        base64-encoded digest in the X-FS-Signature header.

        Args:
            payload: Raw webhook body
            signature: Value of the X-FS-Signature header

        Returns:
            True if signature is valid, False otherwise

        Raises:
            FastSpringWebhookError: If the HMAC secret is not configured
        """
        if not self.hmac_secret:
            raise FastSpringWebhookError(
                "Webhook secret not configured. Set fastspring_hmac_secret in settings."
            )

        expected_signature = base64.b64encode(
            hmac.new(
                key=self.hmac_secret.encode("utf-8"),
                msg=payload,
                digestmod=hashlib.sha256,
            ).digest()
        ).decode("ascii")

        is_valid = hmac.compare_digest(expected_signature, signature.strip())
        if not is_valid:
            logger.warning("Webhook signature verification failed")
        return is_valid

    def parse_webhook_events(self, payload: dict[str, Any]) -> list[WebhookEvent]:
        """
        Parse a webhook envelope into events.

        Raises:
            FastSpringWebhookError: If the envelope is invalid
        """
        try:
            envelope = WebhookEnvelope.model_validate(payload)
        except ValidationError as e:
            logger.error("Invalid webhook envelope: %s", e)
            raise FastSpringWebhookError(f"Invalid webhook envelope: {e.error_count()} error(s)") from e

        logger.info("Parsed %d webhook event(s)", len(envelope.events))
        return envelope.events


def create_fastspring_adapter(
    api_username: str | None = None,
    api_password: str | None = None,
    hmac_secret: str | None = None,
) -> FastSpringAdapter:
    """
    Create a FastSpring adapter instance.

    Args:
        api_username: FastSpring API username (defaults to settings)
        api_password: FastSpring API password (defaults to settings)
        hmac_secret: Webhook HMAC secret (defaults to settings)

    Returns:
        FastSpringAdapter instance
    """
    return FastSpringAdapter(
        api_username=api_username,
        api_password=api_password,
        hmac_secret=hmac_secret,
    )
