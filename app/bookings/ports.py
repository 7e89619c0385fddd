"""Boundary contracts for the collaborators the booking core depends on.

The orchestrator only talks to these protocols. SQL implementations live in
``app.repositories``, payment gateways in ``app.payments`` and notifiers in
``app.notifications``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from app.models.booking import Booking
from app.models.listing import Listing
from app.models.transaction import Refund, Transaction


@dataclass(frozen=True)
class PaymentDetails:
    """What the renter submits to pay for an approved booking."""

    method: str  # card, paypal, bank_transfer
    token: str | None = None  # gateway payment-method token (Stripe ``pm_...``)
    card_number: str | None = None  # mock gateway only
    card_brand: str | None = None
    idempotency_key: str | None = None

    @property
    def card_last_four(self) -> str | None:
        if self.card_number:
            return self.card_number[-4:]
        return None


@dataclass(frozen=True)
class CaptureResult:
    """A capture as reported by the payment gateway; ``pending`` until the processor settles it."""

    reference: str
    amount: Decimal
    currency: str
    status: str = "completed"
    card_last_four: str | None = None
    card_brand: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BookingFilters:
    user_id: uuid.UUID
    role: str = "all"  # all, renter, owner
    status: str | None = None
    listing_id: uuid.UUID | None = None
    skip: int = 0
    limit: int = 20


class BookingRepository(Protocol):
    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None: ...

    async def add_booking(self, booking: Booking) -> None: ...

    async def save_booking(self, booking: Booking, expected_version: int) -> None:
        """Persist ``booking`` if the stored version still equals ``expected_version``.

        Raises ``VersionConflict`` otherwise.
        """
        ...

    async def get_listing(self, listing_id: uuid.UUID) -> Listing | None: ...

    async def get_transaction_for_booking(self, booking_id: uuid.UUID) -> Transaction | None: ...

    async def add_transaction(self, transaction: Transaction) -> None: ...

    async def add_refund(self, refund: Refund) -> None: ...

    async def list_bookings(self, filters: BookingFilters) -> tuple[list[Booking], int]: ...

    async def list_due_bookings(self, statuses: set[str], limit: int) -> list[Booking]: ...

    async def booking_stats(self, user_id: uuid.UUID) -> dict[str, Any]: ...


class AvailabilityIndex(Protocol):
    async def check_available(self, listing_id: uuid.UUID, start: date, end: date) -> bool: ...

    async def hold(self, listing_id: uuid.UUID, start: date, end: date, booking_id: uuid.UUID) -> None:
        """Reserve the range for ``booking_id``; raises ``AvailabilityConflict`` if taken."""
        ...

    async def release(self, listing_id: uuid.UUID, start: date, end: date, booking_id: uuid.UUID) -> None: ...

    async def has_hold(self, booking_id: uuid.UUID) -> bool:
        """True while ``booking_id`` still holds its dates."""
        ...


class PaymentGateway(Protocol):
    async def capture(
        self,
        amount: Decimal,
        currency: str,
        details: PaymentDetails,
        *,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> CaptureResult:
        """Charge the renter. Raises ``PaymentError`` on any failure.

        Replaying the same ``idempotency_key`` must return the original
        capture instead of charging again.
        """
        ...

    async def refund(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        *,
        idempotency_key: str,
    ) -> str:
        """Refund part or all of a capture; returns the gateway refund id."""
        ...


class Notifier(Protocol):
    async def notify(self, user_id: uuid.UUID, event: str, payload: dict[str, Any]) -> None: ...


class Clock(Protocol):
    def __call__(self) -> datetime: ...
