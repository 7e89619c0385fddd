"""Payment records: one Transaction per confirmed booking, plus its refunds."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, UUIDPrimaryKeyMixin


def transaction_reference(transaction_id: uuid.UUID) -> str:
    return f"TXN{transaction_id.hex[-8:].upper()}"


class Transaction(UUIDPrimaryKeyMixin, Base):
    """A captured payment for a booking. Never updated once completed."""

    __tablename__ = "transactions"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
        index=True,
    )
    payer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    recipient_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    reference_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending, completed, failed
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)  # card, paypal, bank_transfer
    gateway_reference: Mapped[str] = mapped_column(String(255), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    card_last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    card_brand: Mapped[str | None] = mapped_column(String(50), nullable=True)
    platform_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    processing_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    refunds: Mapped[list["Refund"]] = relationship(back_populates="transaction", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, ref={self.reference_number}, amount={self.amount}, status={self.status})>"


class Refund(UUIDPrimaryKeyMixin, Base):
    """Money returned to the renter when a paid booking is cancelled."""

    __tablename__ = "refunds"

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("transactions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("bookings.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    refund_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    policy_rule: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    gateway_reference: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    transaction: Mapped["Transaction"] = relationship(back_populates="refunds", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Refund(id={self.id}, transaction_id={self.transaction_id}, amount={self.amount})>"
