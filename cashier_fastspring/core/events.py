"""
FastSpring webhook event schemas.

FastSpring posts a JSON envelope holding one or more events:

    {"events": [{"id": "...", "type": "subscription.activated", "live": false,
                 "processed": false, "created": 1700000000000, "data": {...}}]}

Subscription events are delivered with expansion enabled, so ``data`` embeds
the account and product objects instead of bare ids.
"""

from datetime import UTC, date, datetime, tzinfo
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import MalformedPayloadError


class WebhookEventType(StrEnum):
    """FastSpring webhook event types handled by this package."""

    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    SUBSCRIPTION_DEACTIVATED = "subscription.deactivated"
    SUBSCRIPTION_PAYMENT_OVERDUE = "subscription.payment.overdue"


class WebhookEvent(BaseModel):
    """A single FastSpring webhook event."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="FastSpring event id")
    type: str = Field(..., min_length=1, description="Event type, e.g. subscription.activated")
    live: bool = Field(False, description="False for test-mode events")
    processed: bool = Field(False, description="Whether FastSpring saw an earlier acknowledgement")
    created: Optional[int] = Field(None, description="Creation time in epoch milliseconds")
    data: dict[str, Any] = Field(default_factory=dict, description="Decoded event payload")


class WebhookEnvelope(BaseModel):
    """Request body of a FastSpring webhook delivery."""

    events: list[WebhookEvent] = Field(default_factory=list)


class Account(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product: str


class Instruction(BaseModel):
    """One billing period reported by FastSpring. Either boundary may be null."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    period_start: Optional[int] = Field(None, alias="periodStartDateInSeconds")
    period_end: Optional[int] = Field(None, alias="periodEndDateInSeconds")

    @field_validator("period_start", "period_end")
    @classmethod
    def check_convertible(cls, v: Optional[int]) -> Optional[int]:
        """Reject timestamps outside the range a calendar date can hold."""
        if v is None:
            return v
        try:
            datetime.fromtimestamp(v, tz=UTC)
        except (ValueError, OverflowError, OSError) as e:
            raise ValueError(f"timestamp {v} is out of range") from e
        return v

    @property
    def is_complete(self) -> bool:
        return self.period_start is not None and self.period_end is not None


class SubscriptionEventData(BaseModel):
    """Validated ``data`` of an expanded subscription event."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    account: Account
    tags: dict[str, Any] = Field(default_factory=dict)
    id: str
    product: Product
    state: str
    currency: str
    quantity: int
    interval_unit: str = Field(..., alias="intervalUnit")
    interval_length: int = Field(..., alias="intervalLength")
    instructions: list[Instruction] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v: Any) -> Any:
        # Any shape other than an object carries no subscription name
        return v if isinstance(v, dict) else {}

    @field_validator("instructions", mode="before")
    @classmethod
    def null_instructions(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def from_event(cls, event: WebhookEvent) -> "SubscriptionEventData":
        """
        Validate the payload of a subscription event.

        Raises:
            MalformedPayloadError: If required keys are missing or mistyped
        """
        try:
            return cls.model_validate(event.data)
        except ValidationError as e:
            raise MalformedPayloadError(
                f"Malformed {event.type} payload in event {event.id}: "
                f"{e.error_count()} validation error(s)",
                errors=e.errors(include_url=False),
            ) from e


def timestamp_to_date(seconds: int, tz: tzinfo = UTC) -> date:
    """Truncate a Unix timestamp to the calendar date it falls on in ``tz``."""
    return datetime.fromtimestamp(seconds, tz=tz).date()
