"""Shared test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (aiosqlite + StaticPool, so
every connection sees the same memory DB). Set ``TEST_DATABASE_URL`` to run
the suite against a real PostgreSQL database instead.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.auth.jwt import create_token_pair
from app.auth.passwords import hash_password
from app.database import Base, get_db
from app.main import app
from app.models.listing import Listing
from app.models.user import User
from tests.fakes import future_dates

_TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _make_engine():
    if _TEST_DB_URL.startswith("sqlite"):
        return create_async_engine(
            _TEST_DB_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(_TEST_DB_URL, pool_pre_ping=True)


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Create the schema on a fresh engine and drop it afterwards."""
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            if transaction.is_active:
                await transaction.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users and auth headers
# ---------------------------------------------------------------------------


async def _create_user(db_session: AsyncSession, prefix: str, name: str, role: str = "user") -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=f"{prefix}-{unique}@test.com",
        hashed_password=hash_password("testpass123"),
        name=name,
        is_active=True,
        role=role,
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


def _headers(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id), user.role)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "owner", "Listing Owner")


@pytest_asyncio.fixture
async def renter(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "renter", "Item Renter")


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "outsider", "Someone Else")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin", "Site Admin", role="admin")


@pytest_asyncio.fixture
async def owner_headers(owner: User) -> dict[str, str]:
    return _headers(owner)


@pytest_asyncio.fixture
async def renter_headers(renter: User) -> dict[str, str]:
    return _headers(renter)


@pytest_asyncio.fixture
async def outsider_headers(outsider: User) -> dict[str, str]:
    return _headers(outsider)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict[str, str]:
    return _headers(admin)


# ---------------------------------------------------------------------------
# Listings and bookings
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def listing(db_session: AsyncSession, owner: User) -> Listing:
    """An active listing at 100/night with a 50 cleaning fee, up to 4 guests."""
    item = Listing(
        owner_id=owner.id,
        title="Canal-side studio",
        description="Quiet studio for automated tests.",
        location="Amsterdam",
        category="apartment",
        nightly_rate=Decimal("100.00"),
        cleaning_fee=Decimal("50.00"),
        max_guests=4,
        status="active",
    )
    db_session.add(item)
    await db_session.flush()
    await db_session.refresh(item)
    return item


@pytest_asyncio.fixture
async def pending_booking(client: AsyncClient, renter_headers: dict, listing: Listing) -> dict:
    """A booking request created through the API."""
    start, end = future_dates()
    response = await client.post(
        "/api/v1/bookings",
        json={
            "listing_id": str(listing.id),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "guest_count": 2,
        },
        headers=renter_headers,
    )
    assert response.status_code == 201, f"Failed to create test booking: {response.text}"
    return response.json()


@pytest_asyncio.fixture
async def confirmed_booking(
    client: AsyncClient,
    owner_headers: dict,
    renter_headers: dict,
    pending_booking: dict,
) -> dict:
    """``pending_booking`` approved by the owner and paid by the renter.

    Returns the payment response: ``{"booking", "transaction", "replayed"}``.
    """
    booking_id = pending_booking["id"]
    approved = await client.post(f"/api/v1/bookings/{booking_id}/approve", headers=owner_headers)
    assert approved.status_code == 200, approved.text
    paid = await client.post(
        f"/api/v1/bookings/{booking_id}/pay",
        json={"payment_method": "card", "card_number": "4242424242424242", "card_brand": "visa"},
        headers=renter_headers,
    )
    assert paid.status_code == 200, f"Failed to pay test booking: {paid.text}"
    return paid.json()
