"""
Pytest configuration and shared fixtures for the API tests.

Provides:
- In-memory SQLite database per test (aiosqlite + StaticPool)
- FastAPI app with the database session dependency overridden
- httpx AsyncClient over ASGITransport
- act_as fixture to authenticate requests as a given user without tokens

Async Helper Functions:
- acreate_user_in_db(): Create a User
- acreate_org_in_db(): Create an Organization owned by a user
- acreate_live_event_in_db(): Create a published, public event
- acreate_ticket_type_in_db(): Create a ticket type on an event
- acreate_paid_order_in_db(): Create an order and confirm its payment
"""

from __future__ import annotations

import os
import sys
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read once at import time, so the environment is fixed up
# before anything from the ticketing package is imported.
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL_APP"] = "sqlite+aiosqlite:///:memory:"
os.environ["OTEL_ENABLED"] = "false"
os.environ["PASSWORD_BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")

import httpx  # noqa: E402 (import after env setup)
import pytest  # noqa: E402 (import after env setup)
from fastapi import FastAPI  # noqa: E402 (import after env setup)
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402 (import after env setup)

from ticketing.core.db import get_async_db_session  # noqa: E402
from ticketing.core.dependencies import get_current_user  # noqa: E402
from ticketing.core.security.permissions import permissions_for_role  # noqa: E402
from ticketing.db.models import Base, Event, Order, Organization, TicketType, User  # noqa: E402
from ticketing.db.validators import utcnow  # noqa: E402
from ticketing.domain.enums import TicketKind, UserRole  # noqa: E402
from ticketing.main import create_app  # noqa: E402

DEFAULT_PASSWORD = "correct-horse-battery"


# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
# This fixture ensures async fixtures work with AnyIO's pytest plugin.
@pytest.fixture
def anyio_backend():
    return "asyncio"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Fresh in-memory database for each test.

    StaticPool keeps the single connection alive so every session sees
    the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def async_db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """
    Session shared by the test body and the app under test.

    Mirrors the application sessionmaker: no autoflush, no expiry on commit.
    """
    session_maker = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        yield session


# ============================================================================
# App and Client Fixtures
# ============================================================================


@pytest.fixture
def app(async_db_session: AsyncSession) -> FastAPI:
    application = create_app()

    async def override_get_async_db():
        yield async_db_session

    application.dependency_overrides[get_async_db_session] = override_get_async_db
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient]:
    """AsyncClient; unauthenticated until act_as() is called."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def create_mock_token(user: User, session_id: uuid.UUID | None = None) -> dict[str, Any]:
    """
    Access token payload for a user, as the auth dependency would return it.

    Args:
        user: User the request acts as
        session_id: Session id claim, random when omitted

    Returns:
        Payload with sub, email, role, permissions and sid claims
    """
    role = user.role.value
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": role,
        "permissions": permissions_for_role(role),
        "sid": str(session_id or uuid.uuid4()),
        "type": "access",
    }


@pytest.fixture
def act_as(app: FastAPI) -> Callable[[User], dict[str, Any]]:
    """
    Switch the authenticated user for subsequent requests.

    Usage:
        act_as(buyer)
        response = await client.get("/api/v1/orders")
    """

    def _act_as(user: User) -> dict[str, Any]:
        payload = create_mock_token(user)

        async def override_get_current_user():
            return payload

        app.dependency_overrides[get_current_user] = override_get_current_user
        return payload

    return _act_as


# ============================================================================
# Test Data Factories
# ============================================================================


async def acreate_user_in_db(session: AsyncSession, **kwargs) -> User:
    """Create a user with a known password (DEFAULT_PASSWORD unless given)."""
    from ticketing.repos import auth_repo

    defaults = {
        "email": f"user-{uuid.uuid4().hex[:8]}@example.com",
        "password": DEFAULT_PASSWORD,
        "full_name": "Test User",
        "role": UserRole.ATTENDEE,
    }
    defaults.update(kwargs)
    user = await auth_repo.create_user(session, **defaults)
    await session.commit()
    return user


async def acreate_org_in_db(session: AsyncSession, owner: User, **kwargs) -> Organization:
    from ticketing.repos import org_repo

    defaults = {"name": f"Org {uuid.uuid4().hex[:6]}", "currency": "USD"}
    defaults.update(kwargs)
    org = await org_repo.create_org(session, created_by=owner.id, **defaults)
    await session.commit()
    return org


async def acreate_live_event_in_db(
    session: AsyncSession, org: Organization, owner: User, **kwargs
) -> Event:
    """Create an event starting in a week and publish it."""
    from ticketing.repos import event_repo

    defaults = {
        "title": "Live Show",
        "start_at": utcnow() + timedelta(days=7),
    }
    defaults.update(kwargs)
    event = await event_repo.create_event(
        session, org_id=org.id, created_by=owner.id, **defaults
    )
    event = await event_repo.publish_event(session, event_id=event.id, user_id=owner.id)
    await session.commit()
    return event


async def acreate_ticket_type_in_db(
    session: AsyncSession, event: Event, owner: User, **kwargs
) -> TicketType:
    from ticketing.repos import inventory_repo

    defaults = {
        "name": "General Admission",
        "kind": TicketKind.GA,
        "price_cents": 5000,
        "fee_cents": 0,
        "capacity": 100,
    }
    defaults.update(kwargs)
    ticket_type = await inventory_repo.create_ticket_type(
        session, event_id=event.id, user_id=owner.id, **defaults
    )
    await session.commit()
    return ticket_type


async def acreate_paid_order_in_db(
    session: AsyncSession,
    buyer: User,
    event: Event,
    ticket_type: TicketType,
    quantity: int = 1,
) -> Order:
    """Create an order and confirm its payment so tickets are issued."""
    from ticketing.repos import order_repo

    order = await order_repo.create_order(
        session,
        buyer_id=buyer.id,
        event_id=event.id,
        items=[{"ticket_type_id": ticket_type.id, "quantity": quantity}],
    )
    if order.total_cents:
        order = await order_repo.confirm_payment(
            session,
            order_id=order.id,
            user_id=buyer.id,
            provider="test",
            reference=f"ref-{uuid.uuid4().hex[:8]}",
        )
    await session.commit()
    return order


# ============================================================================
# Composite Fixtures
# ============================================================================


@pytest.fixture
async def organizer(async_db_session: AsyncSession) -> User:
    return await acreate_user_in_db(
        async_db_session, email="organizer@example.com", role=UserRole.ORGANIZER
    )


@pytest.fixture
async def buyer(async_db_session: AsyncSession) -> User:
    return await acreate_user_in_db(async_db_session, email="buyer@example.com")


@pytest.fixture
async def admin(async_db_session: AsyncSession) -> User:
    return await acreate_user_in_db(
        async_db_session, email="admin@example.com", role=UserRole.ADMIN
    )


@pytest.fixture
async def org(async_db_session: AsyncSession, organizer: User) -> Organization:
    return await acreate_org_in_db(async_db_session, organizer, name="Night Owls")


@pytest.fixture
async def live_event(async_db_session: AsyncSession, org: Organization, organizer: User) -> Event:
    return await acreate_live_event_in_db(async_db_session, org, organizer)


@pytest.fixture
async def ga_ticket_type(
    async_db_session: AsyncSession, live_event: Event, organizer: User
) -> TicketType:
    return await acreate_ticket_type_in_db(async_db_session, live_event, organizer)
