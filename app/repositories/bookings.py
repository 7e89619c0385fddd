"""SQLAlchemy persistence for bookings, listings and payment records."""

import logging
import uuid
from typing import Any

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import attributes

from app.bookings.errors import VersionConflict
from app.bookings.ports import BookingFilters
from app.bookings.statuses import BookingStatus
from app.models.booking import Booking
from app.models.listing import Listing
from app.models.transaction import Refund, Transaction

logger = logging.getLogger(__name__)

_SPENDING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ACTIVE, BookingStatus.COMPLETED)


class SqlBookingRepository:
    """``BookingRepository`` over an ``AsyncSession``.

    Reads always go to the database (``populate_existing``) so the service
    never acts on a stale identity-map copy. Writes compare the ``version``
    column under a row lock and raise ``VersionConflict`` on a mismatch; the
    ORM still emits ``UPDATE ... WHERE id = ? AND version = ?``.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        result = await self.db.execute(
            select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_booking(self, booking: Booking) -> None:
        self.db.add(booking)
        await self.db.flush()

    async def save_booking(self, booking: Booking, expected_version: int) -> None:
        history = attributes.get_history(booking, "version")
        loaded_version = history.deleted[0] if history.deleted else booking.version
        if loaded_version != expected_version:
            raise VersionConflict(
                "Booking was modified by another request",
                details={"expected_version": expected_version, "loaded_version": loaded_version},
            )
        # Checked under a row lock; a conflict discards only this booking's changes.
        with self.db.no_autoflush:
            stored_version = await self.db.scalar(
                select(Booking.version).where(Booking.id == booking.id).with_for_update()
            )
        if stored_version != expected_version:
            logger.warning(
                "Version conflict saving booking %s (expected v%s, stored v%s)",
                booking.id,
                expected_version,
                stored_version,
            )
            self.db.expire(booking)
            raise VersionConflict(
                "Booking was modified by another request",
                details={"expected_version": expected_version, "current_version": stored_version},
            )
        await self.db.flush()

    async def get_listing(self, listing_id: uuid.UUID) -> Listing | None:
        result = await self.db.execute(select(Listing).where(Listing.id == listing_id))
        return result.scalar_one_or_none()

    async def get_transaction_for_booking(self, booking_id: uuid.UUID) -> Transaction | None:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_transaction(self, transaction: Transaction) -> None:
        self.db.add(transaction)
        await self.db.flush()

    async def add_refund(self, refund: Refund) -> None:
        self.db.add(refund)
        await self.db.flush()

    async def list_bookings(self, filters: BookingFilters) -> tuple[list[Booking], int]:
        if filters.role == "renter":
            party = Booking.renter_id == filters.user_id
        elif filters.role == "owner":
            party = Booking.owner_id == filters.user_id
        else:
            party = or_(Booking.renter_id == filters.user_id, Booking.owner_id == filters.user_id)

        base_query = select(Booking).where(party)
        count_query = select(func.count()).select_from(Booking).where(party)

        if filters.status is not None:
            base_query = base_query.where(Booking.status == filters.status)
            count_query = count_query.where(Booking.status == filters.status)
        if filters.listing_id is not None:
            base_query = base_query.where(Booking.listing_id == filters.listing_id)
            count_query = count_query.where(Booking.listing_id == filters.listing_id)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            base_query.order_by(Booking.created_at.desc()).offset(filters.skip).limit(filters.limit)
        )
        return list(result.scalars().all()), total

    async def list_due_bookings(self, statuses: set[str], limit: int) -> list[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.status.in_(statuses))
            .order_by(Booking.start_date)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def booking_stats(self, user_id: uuid.UUID) -> dict[str, Any]:
        as_owner = Booking.owner_id == user_id
        as_renter = Booking.renter_id == user_id
        query = select(
            func.count(Booking.id),
            func.sum(case((Booking.status == BookingStatus.COMPLETED.value, 1), else_=0)),
            func.sum(case((Booking.status == BookingStatus.ACTIVE.value, 1), else_=0)),
            func.sum(case((Booking.status == BookingStatus.PENDING_APPROVAL.value, 1), else_=0)),
            func.sum(
                case(
                    (as_owner & (Booking.status == BookingStatus.COMPLETED.value), Booking.total_cost),
                    else_=0,
                )
            ),
            func.sum(
                case(
                    (as_renter & Booking.status.in_([s.value for s in _SPENDING_STATUSES]), Booking.total_cost),
                    else_=0,
                )
            ),
        ).where(or_(as_owner, as_renter))

        row = (await self.db.execute(query)).one()
        total, completed, active, pending, revenue, spent = row
        return {
            "total_bookings": total or 0,
            "completed_bookings": completed or 0,
            "active_bookings": active or 0,
            "pending_requests": pending or 0,
            "total_revenue": revenue or 0,
            "total_spent": spent or 0,
        }
