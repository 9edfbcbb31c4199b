"""
Subscription and subscription period database models.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin

DEFAULT_SUBSCRIPTION_NAME = "default"


class SubscriptionState(str, Enum):
    """Subscription states reported by FastSpring."""

    ACTIVE = "active"
    TRIAL = "trial"
    CANCELED = "canceled"  # still running until the end of the paid period
    OVERDUE = "overdue"
    DEACTIVATED = "deactivated"


class PeriodType(str, Enum):
    """Source of a subscription period row."""

    FASTSPRING = "fastspring"


class Subscription(Base, TimestampMixin):
    """Recurring billing plan owned by one user, mirrored from FastSpring."""

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        default=DEFAULT_SUBSCRIPTION_NAME,
        nullable=False,
    )

    # Mirrored FastSpring attributes, overwritten by every webhook event
    fastspring_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    plan: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    interval_unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    interval_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_subscriptions_user_name"),
        Index("ix_subscriptions_state", "state"),
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, name={self.name}, "
            f"state={self.state})>"
        )

    @property
    def is_active(self) -> bool:
        """Active or trialling subscriptions grant access."""
        return self.state in (SubscriptionState.ACTIVE.value, SubscriptionState.TRIAL.value)

    @property
    def is_on_trial(self) -> bool:
        return self.state == SubscriptionState.TRIAL.value

    @property
    def is_canceled(self) -> bool:
        return self.state == SubscriptionState.CANCELED.value

    @property
    def is_overdue(self) -> bool:
        return self.state == SubscriptionState.OVERDUE.value

    @property
    def is_deactivated(self) -> bool:
        return self.state == SubscriptionState.DEACTIVATED.value


class SubscriptionPeriod(Base):
    """One billing cycle of a subscription. Rows are insert-only."""

    __tablename__ = "subscription_periods"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    subscription_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(50),
        default=PeriodType.FASTSPRING.value,
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "subscription_id",
            "type",
            "start_date",
            "end_date",
            name="uq_subscription_periods_key",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<SubscriptionPeriod(subscription_id={self.subscription_id}, type={self.type}, "
            f"start_date={self.start_date}, end_date={self.end_date})>"
        )
