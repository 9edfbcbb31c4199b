"""
Unit tests for the SubscriptionActivated listener.

Tests cover:
- Subscription creation and naming
- In-place overwrite of an existing subscription
- Period insertion, null boundaries and idempotency
- Unknown users and malformed payloads
"""

from datetime import date
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cashier_fastspring.core.exceptions import MalformedPayloadError, UserNotFoundError
from cashier_fastspring.core.interfaces import UserRepository
from cashier_fastspring.infrastructure.database.models import (
    Subscription,
    SubscriptionPeriod,
    User,
)
from cashier_fastspring.infrastructure.database.repositories import (
    SqlAlchemySubscriptionPeriodRepository,
    SqlAlchemySubscriptionRepository,
)
from cashier_fastspring.listeners import SubscriptionActivated


async def count_rows(session: AsyncSession, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def all_periods(session: AsyncSession) -> list[SubscriptionPeriod]:
    result = await session.execute(
        select(SubscriptionPeriod).order_by(SubscriptionPeriod.start_date)
    )
    return list(result.scalars().all())


class TestSubscriptionCreation:
    """Tests for the first event seen for a user."""

    @pytest.mark.asyncio
    async def test_creates_default_subscription_from_payload(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        """End-to-end activation creates one subscription and one period."""
        subscription = await listener.handle(make_event(subscription_data))

        assert await count_rows(db_session, Subscription) == 1
        assert subscription.user_id == fastspring_user.id
        assert subscription.name == "default"
        assert subscription.fastspring_id == "sub_99"
        assert subscription.plan == "pro-plan"
        assert subscription.state == "active"
        assert subscription.currency == "USD"
        assert subscription.quantity == 1
        assert subscription.interval_unit == "month"
        assert subscription.interval_length == 1

        periods = await all_periods(db_session)
        assert len(periods) == 1
        assert periods[0].subscription_id == subscription.id
        assert periods[0].type == "fastspring"
        assert periods[0].start_date.isoformat() == "2023-11-14"
        assert periods[0].end_date.isoformat() == "2023-12-14"

    @pytest.mark.asyncio
    async def test_uses_name_tag(
        self, listener, make_event, subscription_data, fastspring_user
    ):
        """tags.name becomes the subscription name."""
        subscription_data["tags"] = {"name": "team-seats"}

        subscription = await listener.handle(make_event(subscription_data))

        assert subscription.name == "team-seats"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tags", [None, {"name": None}, {"other": "value"}])
    async def test_missing_name_tag_defaults(
        self, listener, make_event, subscription_data, fastspring_user, tags
    ):
        """Absent or null name tags fall back to "default"."""
        subscription_data["tags"] = tags

        subscription = await listener.handle(make_event(subscription_data))

        assert subscription.name == "default"

    @pytest.mark.asyncio
    async def test_missing_tags_key_defaults(
        self, listener, make_event, subscription_data, fastspring_user
    ):
        """Payloads without a tags key at all are accepted."""
        del subscription_data["tags"]

        subscription = await listener.handle(make_event(subscription_data))

        assert subscription.name == "default"

    @pytest.mark.asyncio
    async def test_each_user_gets_own_subscription(
        self, listener, make_event, subscription_data, fastspring_user, other_user, db_session
    ):
        """Two accounts produce two independent default subscriptions."""
        first = await listener.handle(make_event(subscription_data))

        subscription_data["account"] = {"id": "acct_2"}
        subscription_data["id"] = "sub_100"
        second = await listener.handle(make_event(subscription_data))

        assert first.id != second.id
        assert first.user_id == fastspring_user.id
        assert second.user_id == other_user.id
        assert await count_rows(db_session, Subscription) == 2

    @pytest.mark.asyncio
    async def test_named_subscriptions_are_kept_apart(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        """A user may hold several subscriptions distinguished by name."""
        default = await listener.handle(make_event(subscription_data))

        subscription_data["tags"] = {"name": "addon"}
        subscription_data["id"] = "sub_addon"
        subscription_data["product"] = {"product": "storage-addon"}
        addon = await listener.handle(make_event(subscription_data))

        assert default.id != addon.id
        assert default.plan == "pro-plan"
        assert addon.plan == "storage-addon"
        assert await count_rows(db_session, Subscription) == 2


class TestSubscriptionUpdate:
    """Tests for later events on an existing subscription."""

    @pytest.mark.asyncio
    async def test_overwrites_existing_subscription_in_place(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        """A second event updates the same row with the new values."""
        created = await listener.handle(make_event(subscription_data))
        created_id = created.id

        subscription_data.update(
            {
                "id": "sub_100",
                "product": {"product": "enterprise-plan"},
                "state": "canceled",
                "currency": "EUR",
                "quantity": 5,
                "intervalUnit": "year",
                "intervalLength": 2,
            }
        )
        updated = await listener.handle(
            make_event(subscription_data, type="subscription.canceled")
        )

        assert updated.id == created_id
        assert await count_rows(db_session, Subscription) == 1
        assert updated.fastspring_id == "sub_100"
        assert updated.plan == "enterprise-plan"
        assert updated.state == "canceled"
        assert updated.currency == "EUR"
        assert updated.quantity == 5
        assert updated.interval_unit == "year"
        assert updated.interval_length == 2
        assert updated.is_canceled
        assert not updated.is_active

    @pytest.mark.asyncio
    async def test_existing_row_from_database_is_reused(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        """A subscription stored before the event is found by (user, name)."""
        existing = Subscription(
            user_id=fastspring_user.id,
            name="default",
            fastspring_id="sub_old",
            plan="basic-plan",
            state="overdue",
        )
        db_session.add(existing)
        await db_session.commit()

        subscription = await listener.handle(make_event(subscription_data))

        assert subscription.id == existing.id
        assert subscription.plan == "pro-plan"
        assert subscription.state == "active"
        assert subscription.is_active


class TestPeriods:
    """Tests for billing period reconciliation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "instruction",
        [
            {"periodStartDateInSeconds": None, "periodEndDateInSeconds": 1702592000},
            {"periodStartDateInSeconds": 1700000000, "periodEndDateInSeconds": None},
            {"periodStartDateInSeconds": None, "periodEndDateInSeconds": None},
            {},
        ],
    )
    async def test_incomplete_instruction_is_skipped(
        self, listener, make_event, subscription_data, fastspring_user, db_session, instruction
    ):
        """A null boundary drops the instruction without an error."""
        subscription_data["instructions"] = [instruction]

        subscription = await listener.handle(make_event(subscription_data))

        assert subscription.fastspring_id == "sub_99"
        assert await count_rows(db_session, SubscriptionPeriod) == 0

    @pytest.mark.asyncio
    async def test_incomplete_instruction_does_not_block_others(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        subscription_data["instructions"].insert(
            0, {"periodStartDateInSeconds": None, "periodEndDateInSeconds": None}
        )

        await listener.handle(make_event(subscription_data))

        assert await count_rows(db_session, SubscriptionPeriod) == 1

    @pytest.mark.asyncio
    async def test_repeated_event_creates_no_duplicate_periods(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        """Replaying an identical payload leaves one period and one subscription."""
        first = await listener.handle(make_event(subscription_data))
        second = await listener.handle(make_event(subscription_data))

        assert first.id == second.id
        assert await count_rows(db_session, Subscription) == 1
        assert await count_rows(db_session, SubscriptionPeriod) == 1

    @pytest.mark.asyncio
    async def test_renewal_adds_new_period(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        """A later event reporting the next cycle inserts only the new period."""
        await listener.handle(make_event(subscription_data))

        subscription_data["instructions"] = [
            {"periodStartDateInSeconds": 1700000000, "periodEndDateInSeconds": 1702592000},
            {"periodStartDateInSeconds": 1702592000, "periodEndDateInSeconds": 1705270400},
        ]
        await listener.handle(make_event(subscription_data))

        periods = await all_periods(db_session)
        assert [(p.start_date, p.end_date) for p in periods] == [
            (date(2023, 11, 14), date(2023, 12, 14)),
            (date(2023, 12, 14), date(2024, 1, 14)),
        ]

    @pytest.mark.asyncio
    async def test_missing_instructions_key_creates_no_periods(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        del subscription_data["instructions"]

        await listener.handle(make_event(subscription_data))

        assert await count_rows(db_session, Subscription) == 1
        assert await count_rows(db_session, SubscriptionPeriod) == 0

    @pytest.mark.asyncio
    async def test_dates_follow_configured_timezone(
        self, make_event, subscription_data, fastspring_user, db_session
    ):
        """1700000000 is 2023-11-15 07:13 in Tokyo."""
        from cashier_fastspring.infrastructure.database.repositories import (
            SqlAlchemyUserRepository,
        )

        tokyo_listener = SubscriptionActivated(
            users=SqlAlchemyUserRepository(db_session),
            subscriptions=SqlAlchemySubscriptionRepository(db_session),
            periods=SqlAlchemySubscriptionPeriodRepository(db_session),
            timezone=ZoneInfo("Asia/Tokyo"),
        )

        await tokyo_listener.handle(make_event(subscription_data))

        periods = await all_periods(db_session)
        assert periods[0].start_date == date(2023, 11, 15)
        assert periods[0].end_date == date(2023, 12, 15)


class TestErrors:
    """Tests for unknown users and malformed payloads."""

    @pytest.mark.asyncio
    async def test_unknown_account_raises_user_not_found(
        self, listener, make_event, subscription_data, fastspring_user, db_session
    ):
        subscription_data["account"] = {"id": "acct_unknown"}

        with pytest.raises(UserNotFoundError) as exc_info:
            await listener.handle(make_event(subscription_data))

        assert exc_info.value.fastspring_id == "acct_unknown"
        assert await count_rows(db_session, Subscription) == 0
        assert await count_rows(db_session, SubscriptionPeriod) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["account", "id", "product", "state", "intervalUnit"])
    async def test_missing_key_raises_malformed_payload(
        self, listener, make_event, subscription_data, fastspring_user, db_session, missing
    ):
        del subscription_data[missing]

        with pytest.raises(MalformedPayloadError) as exc_info:
            await listener.handle(make_event(subscription_data))

        assert exc_info.value.errors
        assert await count_rows(db_session, Subscription) == 0

    @pytest.mark.asyncio
    async def test_unexpanded_account_is_malformed(
        self, listener, make_event, subscription_data, fastspring_user
    ):
        """Webhooks must be configured with expansion enabled."""
        subscription_data["account"] = "acct_1"

        with pytest.raises(MalformedPayloadError):
            await listener.handle(make_event(subscription_data))


class InMemoryUserRepository(UserRepository):
    """User lookup backed by a dict."""

    def __init__(self, users: dict[str, User]):
        self.users = users
        self.lookups: list[str] = []

    async def get_by_fastspring_id(self, fastspring_id: str) -> User | None:
        self.lookups.append(fastspring_id)
        return self.users.get(fastspring_id)


class TestInjectedUserRepository:
    """The user lookup is an injected collaborator."""

    @pytest.mark.asyncio
    async def test_listener_uses_injected_user_repository(
        self, make_event, subscription_data, fastspring_user, db_session
    ):
        users = InMemoryUserRepository({"acct_1": fastspring_user})
        listener = SubscriptionActivated(
            users=users,
            subscriptions=SqlAlchemySubscriptionRepository(db_session),
            periods=SqlAlchemySubscriptionPeriodRepository(db_session),
        )

        subscription = await listener.handle(make_event(subscription_data))

        assert users.lookups == ["acct_1"]
        assert subscription.user_id == fastspring_user.id

    @pytest.mark.asyncio
    async def test_empty_injected_repository_raises(
        self, make_event, subscription_data, db_session
    ):
        listener = SubscriptionActivated(
            users=InMemoryUserRepository({}),
            subscriptions=SqlAlchemySubscriptionRepository(db_session),
            periods=SqlAlchemySubscriptionPeriodRepository(db_session),
        )

        with pytest.raises(UserNotFoundError):
            await listener.handle(make_event(subscription_data))
