"""Listing model: items and places offered for rent."""

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Listing(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A rentable listing owned by a user, priced per night."""

    __tablename__ = "listings"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    location: Mapped[str | None] = mapped_column(String(255), default=None)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="other")
    nightly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    cleaning_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    max_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")  # active, inactive

    # Relationships
    owner: Mapped["User"] = relationship(back_populates="listings", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    @property
    def is_bookable(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, title={self.title!r}, status={self.status!r})>"
