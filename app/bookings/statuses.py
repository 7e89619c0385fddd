"""Booking status catalogue.

The one place that knows how a status is labelled, coloured and whether it
is terminal. API responses and the ``/bookings/statuses`` endpoint read from
``STATUS_META`` instead of re-deriving labels per screen.
"""

from dataclasses import dataclass
from enum import StrEnum


class BookingStatus(StrEnum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StatusMeta:
    """Display metadata for a booking status."""

    status: BookingStatus
    label: str
    color: str  # badge variant: warning, info, danger, success, primary, neutral
    terminal: bool
    description: str


STATUS_META: dict[BookingStatus, StatusMeta] = {
    BookingStatus.PENDING_APPROVAL: StatusMeta(
        status=BookingStatus.PENDING_APPROVAL,
        label="Awaiting approval",
        color="warning",
        terminal=False,
        description="The owner has not yet approved or rejected the request.",
    ),
    BookingStatus.APPROVED: StatusMeta(
        status=BookingStatus.APPROVED,
        label="Approved, awaiting payment",
        color="info",
        terminal=False,
        description="The owner approved the request; the renter must pay before the payment window closes.",
    ),
    BookingStatus.REJECTED: StatusMeta(
        status=BookingStatus.REJECTED,
        label="Rejected",
        color="danger",
        terminal=True,
        description="The owner declined the request.",
    ),
    BookingStatus.CONFIRMED: StatusMeta(
        status=BookingStatus.CONFIRMED,
        label="Confirmed",
        color="success",
        terminal=False,
        description="Payment captured; the dates are reserved.",
    ),
    BookingStatus.ACTIVE: StatusMeta(
        status=BookingStatus.ACTIVE,
        label="In progress",
        color="primary",
        terminal=False,
        description="The rental period has started.",
    ),
    BookingStatus.COMPLETED: StatusMeta(
        status=BookingStatus.COMPLETED,
        label="Completed",
        color="success",
        terminal=True,
        description="The rental period has ended; the renter may leave a review.",
    ),
    BookingStatus.CANCELLED: StatusMeta(
        status=BookingStatus.CANCELLED,
        label="Cancelled",
        color="neutral",
        terminal=True,
        description="The booking was cancelled; any refund follows the cancellation policy.",
    ),
}

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    meta.status for meta in STATUS_META.values() if meta.terminal
)

# Statuses whose availability hold is still in force.
HOLDING_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.PENDING_APPROVAL,
        BookingStatus.APPROVED,
        BookingStatus.CONFIRMED,
        BookingStatus.ACTIVE,
    }
)


def get_status_meta(status: str) -> StatusMeta:
    """Look up metadata for a status value. Raises ``ValueError`` if unknown."""
    return STATUS_META[BookingStatus(status)]


def is_terminal(status: str) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES
