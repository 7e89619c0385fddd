"""Availability holds: a listing's calendar slots reserved by bookings."""

import uuid
from datetime import date, datetime

from sqlalchemy import ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UUIDPrimaryKeyMixin


class AvailabilityHold(UUIDPrimaryKeyMixin, Base):
    """A ``[start_date, end_date)`` slot held for one booking until released."""

    __tablename__ = "availability_holds"

    listing_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (Index("ix_availability_holds_listing_dates", "listing_id", "start_date", "end_date"),)

    def __repr__(self) -> str:
        return f"<AvailabilityHold(listing_id={self.listing_id}, {self.start_date}..{self.end_date})>"
