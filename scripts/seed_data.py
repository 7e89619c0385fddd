"""Seed the database with demo users, listings and bookings in several states.

Bookings are driven through ``BookingService`` with the mock payment gateway,
so their prices, holds and transactions are exactly what the API would
produce.

Run:
    python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Add the project root to the path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.auth.passwords import hash_password
from app.bookings.ports import PaymentDetails
from app.database import session_scope
from app.models.listing import Listing
from app.models.user import User
from app.notifications.notifier import LoggingNotifier
from app.payments.mock_gateway import MockPaymentGateway
from app.repositories.availability import SqlAvailabilityIndex
from app.repositories.bookings import SqlBookingRepository
from app.services.booking_service import BookingService, CreateBookingRequest

DEMO_PASSWORD = "demo1234"

USERS = [
    {"email": "owner@smartrental.dev", "name": "Olivia Owner", "role": "user"},
    {"email": "renter@smartrental.dev", "name": "Ryan Renter", "role": "user"},
    {"email": "admin@smartrental.dev", "name": "Ada Admin", "role": "admin"},
]

LISTINGS = [
    {
        "title": "Sunny loft near the river",
        "description": "Bright one-bedroom loft with a balcony and fast wifi.",
        "location": "Portland, OR",
        "category": "apartment",
        "nightly_rate": Decimal("120.00"),
        "cleaning_fee": Decimal("0.00"),
        "max_guests": 2,
    },
    {
        "title": "Family cabin with hot tub",
        "description": "Three bedrooms, wood stove and a hot tub overlooking the pines.",
        "location": "Bend, OR",
        "category": "cabin",
        "nightly_rate": Decimal("210.00"),
        "cleaning_fee": Decimal("45.00"),
        "max_guests": 6,
    },
    {
        "title": "Cargo e-bike",
        "description": "Long-tail cargo bike with two child seats and panniers.",
        "location": "Portland, OR",
        "category": "equipment",
        "nightly_rate": Decimal("35.00"),
        "cleaning_fee": Decimal("0.00"),
        "max_guests": 1,
    },
]


async def seed() -> None:
    """Populate the database. Does nothing when the demo owner already exists."""
    async with session_scope() as session:
        result = await session.execute(select(User).where(User.email == USERS[0]["email"]))
        if result.scalar_one_or_none() is not None:
            print(f"Demo data already present ({USERS[0]['email']}); nothing to do.")
            return

        users: dict[str, User] = {}
        for data in USERS:
            user = User(hashed_password=hash_password(DEMO_PASSWORD), **data)
            session.add(user)
            users[data["role"] if data["role"] == "admin" else data["email"].split("@")[0]] = user
        await session.flush()
        owner, renter = users["owner"], users["renter"]
        print(f"Created {len(users)} users (password: {DEMO_PASSWORD})")

        listings: list[Listing] = []
        for data in LISTINGS:
            listing = Listing(owner_id=owner.id, **data)
            session.add(listing)
            listings.append(listing)
        await session.flush()
        print(f"Created {len(listings)} listings")

        service = BookingService(
            SqlBookingRepository(session),
            SqlAvailabilityIndex(session),
            MockPaymentGateway(),
            LoggingNotifier(),
        )
        today = date.today()

        def request(listing: Listing, offset: int, nights: int, guests: int = 1) -> CreateBookingRequest:
            start = today + timedelta(days=offset)
            return CreateBookingRequest(
                listing_id=listing.id,
                start_date=start,
                end_date=start + timedelta(days=nights),
                guest_count=guests,
            )

        pending = await service.create_booking(renter.id, request(listings[0], 14, 3, 2))

        approved = await service.create_booking(renter.id, request(listings[1], 21, 4, 4))
        await service.approve_booking(approved.id, owner.id)

        confirmed = await service.create_booking(renter.id, request(listings[1], 40, 2, 2))
        await service.approve_booking(confirmed.id, owner.id)
        await service.initiate_payment(
            confirmed.id,
            renter.id,
            PaymentDetails(method="card", card_number="4242424242424242", card_brand="visa"),
        )

        rejected = await service.create_booking(renter.id, request(listings[2], 7, 1))
        await service.reject_booking(rejected.id, owner.id, reason="Bike is in the shop that week")

        print("Bookings:")
        for booking in (pending, approved, confirmed, rejected):
            print(f"   {booking.reference_number}  {booking.status:<17} total {booking.total_cost} {booking.currency}")
        print("Done. Log in at /api/v1/auth/login")


if __name__ == "__main__":
    asyncio.run(seed())
