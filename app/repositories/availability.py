"""Listing availability index backed by the ``availability_holds`` table."""

import logging
import uuid
from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.bookings.clock import utcnow
from app.bookings.errors import AvailabilityConflict
from app.models.availability import AvailabilityHold
from app.models.listing import Listing

logger = logging.getLogger(__name__)


def _overlapping(listing_id: uuid.UUID, start: date, end: date):
    """Unreleased holds on ``listing_id`` intersecting ``[start, end)``."""
    return (
        AvailabilityHold.listing_id == listing_id,
        AvailabilityHold.released_at.is_(None),
        AvailabilityHold.start_date < end,
        AvailabilityHold.end_date > start,
    )


class SqlAvailabilityIndex:
    """``AvailabilityIndex`` using row locks on the listing to serialise holds."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def check_available(self, listing_id: uuid.UUID, start: date, end: date) -> bool:
        result = await self.db.execute(
            select(func.count()).select_from(AvailabilityHold).where(*_overlapping(listing_id, start, end))
        )
        return result.scalar_one() == 0

    async def hold(self, listing_id: uuid.UUID, start: date, end: date, booking_id: uuid.UUID) -> None:
        # Lock the listing row so concurrent holds on it queue up behind us.
        await self.db.execute(select(Listing.id).where(Listing.id == listing_id).with_for_update())
        if not await self.check_available(listing_id, start, end):
            raise AvailabilityConflict(
                "Selected dates are not available. Please choose different dates.",
                details={"listing_id": str(listing_id), "start_date": start.isoformat(), "end_date": end.isoformat()},
            )
        self.db.add(
            AvailabilityHold(
                listing_id=listing_id,
                booking_id=booking_id,
                start_date=start,
                end_date=end,
            )
        )
        await self.db.flush()
        logger.info("Held listing %s for %s..%s (booking %s)", listing_id, start, end, booking_id)

    async def release(self, listing_id: uuid.UUID, start: date, end: date, booking_id: uuid.UUID) -> None:
        await self.db.execute(
            update(AvailabilityHold)
            .where(
                AvailabilityHold.booking_id == booking_id,
                AvailabilityHold.listing_id == listing_id,
                AvailabilityHold.released_at.is_(None),
            )
            .values(released_at=utcnow())
        )
        logger.info("Released hold on listing %s for booking %s", listing_id, booking_id)

    async def has_hold(self, booking_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(AvailabilityHold)
            .where(AvailabilityHold.booking_id == booking_id, AvailabilityHold.released_at.is_(None))
        )
        return result.scalar_one() > 0

    async def blocked_ranges(self, listing_id: uuid.UUID, start: date, end: date) -> list[tuple[date, date]]:
        """Held ``(start, end)`` ranges intersecting the window, for calendar views."""
        result = await self.db.execute(
            select(AvailabilityHold.start_date, AvailabilityHold.end_date)
            .where(*_overlapping(listing_id, start, end))
            .order_by(AvailabilityHold.start_date)
        )
        return [(row.start_date, row.end_date) for row in result.all()]
