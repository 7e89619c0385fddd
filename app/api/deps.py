"""Shared API dependencies: single import point for all routers.

Re-exports the database session and authentication dependencies and wires
the booking service to its SQL, payment and notification collaborators::

    from app.api.deps import get_booking_service, get_current_active_user
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_active_user, get_current_user, require_admin
from app.database import get_db
from app.notifications.notifier import LoggingNotifier
from app.payments.gateways import get_payment_gateway
from app.repositories.availability import SqlAvailabilityIndex
from app.repositories.bookings import SqlBookingRepository
from app.services.booking_service import BookingService

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "require_admin",
    "get_notifier",
    "get_booking_service",
]


@lru_cache
def get_notifier() -> LoggingNotifier:
    """Process-wide notifier."""
    return LoggingNotifier()


async def get_booking_service(db: AsyncSession = Depends(get_db)) -> BookingService:
    """A ``BookingService`` bound to the request's database session."""
    return BookingService(
        SqlBookingRepository(db),
        SqlAvailabilityIndex(db),
        get_payment_gateway(),
        get_notifier(),
    )
