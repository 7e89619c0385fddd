"""Booking model: a renter's reservation of a listing for a date range."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, UUIDPrimaryKeyMixin


def booking_reference(booking_id: uuid.UUID) -> str:
    """Human-readable reference shown to both parties, e.g. ``BK1A2B3C4D``."""
    return f"BK{booking_id.hex[-8:].upper()}"


class Booking(UUIDPrimaryKeyMixin, Base):
    """A reservation linking a renter to a listing for specific dates.

    The financial snapshot columns are written once at creation. ``version``
    is the optimistic-concurrency counter: every status transition bumps it
    and the UPDATE only matches the row version the caller loaded.
    """

    __tablename__ = "bookings"

    reference_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("listings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    renter_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Financial snapshot
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    nightly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(nullable=False)
    cleaning_fee: Mapped[Decimal] = mapped_column(nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending_approval", index=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)  # renter, owner, system
    review_left: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    listing: Mapped["Listing"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    __table_args__ = (
        Index("ix_bookings_listing_dates", "listing_id", "start_date", "end_date"),
        Index("ix_bookings_renter_status", "renter_id", "status"),
        Index("ix_bookings_owner_status", "owner_id", "status"),
    )
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, ref={self.reference_number}, status={self.status})>"
