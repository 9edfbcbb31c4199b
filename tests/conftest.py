"""
Pytest configuration and shared fixtures.
"""

import os

# Settings are read at import time; point them at test values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("FASTSPRING_HMAC_SECRET", "test_webhook_secret")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any, AsyncGenerator, Callable
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cashier_fastspring.adapters.payments import FastSpringAdapter
from cashier_fastspring.core.events import WebhookEvent
from cashier_fastspring.infrastructure.database.connection import get_db
from cashier_fastspring.infrastructure.database.models import Base, User
from cashier_fastspring.infrastructure.database.repositories import (
    SqlAlchemySubscriptionPeriodRepository,
    SqlAlchemySubscriptionRepository,
    SqlAlchemyUserRepository,
)
from cashier_fastspring.listeners import SubscriptionActivated

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_WEBHOOK_SECRET = "test_webhook_secret"


@pytest.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def fastspring_user(db_session: AsyncSession) -> User:
    """User linked to FastSpring account acct_1."""
    user = User(
        id=str(uuid4()),
        email="subscriber@example.com",
        name="Subscriber",
        fastspring_id="acct_1",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Second user linked to FastSpring account acct_2."""
    user = User(
        id=str(uuid4()),
        email="other@example.com",
        name="Other Subscriber",
        fastspring_id="acct_2",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def subscription_data() -> dict[str, Any]:
    """Expanded subscription.activated payload for acct_1."""
    return {
        "account": {"id": "acct_1"},
        "tags": {},
        "id": "sub_99",
        "product": {"product": "pro-plan"},
        "state": "active",
        "currency": "USD",
        "quantity": 1,
        "intervalUnit": "month",
        "intervalLength": 1,
        "instructions": [
            {
                "periodStartDateInSeconds": 1700000000,
                "periodEndDateInSeconds": 1702592000,
            }
        ],
    }


@pytest.fixture
def make_event() -> Callable[..., WebhookEvent]:
    """Factory building a WebhookEvent around a data payload."""

    def _make_event(
        data: dict[str, Any],
        type: str = "subscription.activated",
        id: str | None = None,
    ) -> WebhookEvent:
        return WebhookEvent(
            id=id or f"evt_{uuid4().hex[:12]}",
            type=type,
            live=False,
            processed=False,
            created=1700000000000,
            data=data,
        )

    return _make_event


@pytest.fixture
def listener(db_session: AsyncSession) -> SubscriptionActivated:
    """SubscriptionActivated wired to SQLAlchemy repositories."""
    return SubscriptionActivated(
        users=SqlAlchemyUserRepository(db_session),
        subscriptions=SqlAlchemySubscriptionRepository(db_session),
        periods=SqlAlchemySubscriptionPeriodRepository(db_session),
    )


@pytest.fixture
def fastspring_adapter() -> FastSpringAdapter:
    """Adapter with test credentials."""
    return FastSpringAdapter(
        api_username="test_user",
        api_password="test_password",
        hmac_secret=TEST_WEBHOOK_SECRET,
        base_url="https://api.fastspring.test",
    )


@pytest.fixture
async def async_client(
    db_session: AsyncSession,
    fastspring_adapter: FastSpringAdapter,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    from cashier_fastspring.api.routes.webhook import get_fastspring_adapter
    from cashier_fastspring.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fastspring_adapter] = lambda: fastspring_adapter

    # Reset rate limiter state between tests to prevent cross-test 429s
    app.state.limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
