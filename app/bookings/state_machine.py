"""Booking lifecycle state machine.

::

    pending_approval --approve--> approved --confirm--> confirmed --check_in--> active --complete--> completed
           |                         |                      |
           +--reject--> rejected     +------cancel----------+--> cancelled
           +--cancel--> cancelled

Everything here is synchronous and side-effect free apart from mutating the
booking object handed in. Side effects (holds, payments, notifications) and
persistence belong to ``app.services.booking_service``.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from app.bookings.clock import as_utc
from app.bookings.errors import AvailabilityConflict, InvalidTransition, TransitionRejected
from app.bookings.statuses import BookingStatus, is_terminal
from app.config import settings


class BookingEvent(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    COMPLETE = "complete"


class ActorRole(StrEnum):
    RENTER = "renter"
    OWNER = "owner"
    SYSTEM = "system"


class BookingLike(Protocol):
    """The booking attributes the state machine reads and writes."""

    id: uuid.UUID
    owner_id: uuid.UUID
    renter_id: uuid.UUID
    status: str
    start_date: date
    end_date: date
    total_cost: Decimal
    review_left: bool
    version: int


@dataclass(frozen=True)
class Transition:
    event: BookingEvent
    sources: frozenset[BookingStatus]
    target: BookingStatus
    actors: frozenset[ActorRole]
    timestamp_field: str


TRANSITIONS: dict[BookingEvent, Transition] = {
    BookingEvent.APPROVE: Transition(
        event=BookingEvent.APPROVE,
        sources=frozenset({BookingStatus.PENDING_APPROVAL}),
        target=BookingStatus.APPROVED,
        actors=frozenset({ActorRole.OWNER}),
        timestamp_field="approved_at",
    ),
    BookingEvent.REJECT: Transition(
        event=BookingEvent.REJECT,
        sources=frozenset({BookingStatus.PENDING_APPROVAL}),
        target=BookingStatus.REJECTED,
        actors=frozenset({ActorRole.OWNER}),
        timestamp_field="rejected_at",
    ),
    BookingEvent.CONFIRM: Transition(
        event=BookingEvent.CONFIRM,
        sources=frozenset({BookingStatus.APPROVED}),
        target=BookingStatus.CONFIRMED,
        actors=frozenset({ActorRole.RENTER}),
        timestamp_field="confirmed_at",
    ),
    BookingEvent.CANCEL: Transition(
        event=BookingEvent.CANCEL,
        sources=frozenset({BookingStatus.PENDING_APPROVAL, BookingStatus.APPROVED, BookingStatus.CONFIRMED}),
        target=BookingStatus.CANCELLED,
        actors=frozenset({ActorRole.RENTER, ActorRole.OWNER, ActorRole.SYSTEM}),
        timestamp_field="cancelled_at",
    ),
    BookingEvent.CHECK_IN: Transition(
        event=BookingEvent.CHECK_IN,
        sources=frozenset({BookingStatus.CONFIRMED}),
        target=BookingStatus.ACTIVE,
        actors=frozenset({ActorRole.SYSTEM, ActorRole.OWNER}),
        timestamp_field="checked_in_at",
    ),
    BookingEvent.COMPLETE: Transition(
        event=BookingEvent.COMPLETE,
        sources=frozenset({BookingStatus.ACTIVE}),
        target=BookingStatus.COMPLETED,
        actors=frozenset({ActorRole.OWNER, ActorRole.SYSTEM}),
        timestamp_field="completed_at",
    ),
}


def actor_role_for(booking: BookingLike, user_id: uuid.UUID) -> ActorRole | None:
    """Return the role ``user_id`` plays in ``booking``, or ``None`` for outsiders."""
    if user_id == booking.owner_id:
        return ActorRole.OWNER
    if user_id == booking.renter_id:
        return ActorRole.RENTER
    return None


def validate_new_booking(
    *,
    renter_id: uuid.UUID,
    owner_id: uuid.UUID,
    guest_count: int,
    max_guests: int,
    listing_active: bool,
) -> None:
    """Guards for the ``create`` step that do not need the availability index."""
    if renter_id == owner_id:
        raise TransitionRejected("You cannot book your own listing", code="owner_cannot_book")
    if not listing_active:
        raise AvailabilityConflict("This listing is not accepting bookings", code="listing_inactive")
    if guest_count > max_guests:
        raise TransitionRejected(
            f"This listing accommodates at most {max_guests} guests",
            code="capacity_exceeded",
            details={"guest_count": guest_count, "max_guests": max_guests},
            status_code=422,
        )


def check_transition(booking: BookingLike, event: BookingEvent, actor: ActorRole, now: datetime) -> Transition:
    """Validate ``event`` against the booking without mutating it.

    Raises:
        InvalidTransition: the booking is terminal or the event is not legal
            from its current status.
        TransitionRejected: the actor is not permitted or a time guard fails.
    """
    transition = TRANSITIONS[event]
    current = booking.status

    if is_terminal(current):
        raise InvalidTransition(
            f"Booking is already {current} and cannot be changed",
            current_status=current,
            event=event.value,
            code="booking_finalized",
        )
    if current not in transition.sources:
        raise InvalidTransition(
            f"Cannot {event.value} a booking that is {current}",
            current_status=current,
            event=event.value,
        )
    if actor not in transition.actors:
        raise TransitionRejected(
            f"A {actor.value} cannot {event.value} this booking",
            code="actor_not_permitted",
            details={"actor": actor.value, "event": event.value},
        )

    _check_time_guards(booking, event, actor, as_utc(now))
    return transition


def _check_time_guards(booking: BookingLike, event: BookingEvent, actor: ActorRole, now: datetime) -> None:
    today = now.date()

    if event is BookingEvent.CHECK_IN and today < booking.start_date:
        raise TransitionRejected("The rental period has not started yet", code="check_in_not_reached", status_code=422)

    if event is BookingEvent.COMPLETE and not today > booking.end_date:
        raise TransitionRejected("The rental period has not ended yet", code="stay_not_finished", status_code=422)

    if event is BookingEvent.CONFIRM:
        due = getattr(booking, "payment_due_at", None)
        if due is not None and now > as_utc(due):
            raise TransitionRejected(
                "The payment window for this booking has expired",
                code="payment_window_expired",
                status_code=422,
            )

    if (
        event is BookingEvent.CANCEL
        and booking.status == BookingStatus.CONFIRMED
        and actor is not ActorRole.SYSTEM
        and today >= booking.start_date
    ):
        raise TransitionRejected(
            "Confirmed bookings can only be cancelled before the start date",
            code="cancellation_window_closed",
            status_code=422,
        )


def apply_transition(
    booking: BookingLike,
    event: BookingEvent,
    actor: ActorRole,
    *,
    now: datetime,
    reason: str | None = None,
    payment_window: timedelta | None = None,
) -> Transition:
    """Validate and apply ``event``, mutating the booking in place.

    Nothing is written when a guard fails. On success the status, the
    transition's timestamp and ``version`` are updated together.
    """
    transition = check_transition(booking, event, actor, now)

    booking.status = transition.target.value
    setattr(booking, transition.timestamp_field, now)

    if event is BookingEvent.APPROVE:
        window = payment_window or timedelta(hours=settings.payment_window_hours)
        booking.payment_due_at = now + window
    elif event in (BookingEvent.REJECT, BookingEvent.CANCEL):
        booking.cancellation_reason = reason
        if event is BookingEvent.CANCEL:
            booking.cancelled_by = actor.value

    booking.version += 1
    return transition


def allowed_events(booking: BookingLike, actor: ActorRole, now: datetime) -> list[BookingEvent]:
    """Events ``actor`` could trigger right now, in lifecycle order."""
    events = []
    for event in TRANSITIONS:
        try:
            check_transition(booking, event, actor, now)
        except (InvalidTransition, TransitionRejected):
            continue
        events.append(event)
    return events


def ensure_frozen_total(booking: BookingLike, amount: Decimal) -> None:
    """Payment must match the total frozen at creation; it is never recomputed."""
    if Decimal(amount) != Decimal(booking.total_cost):
        raise TransitionRejected(
            "Payment amount does not match the booking total",
            code="amount_mismatch",
            details={"expected": str(booking.total_cost), "received": str(amount)},
            status_code=422,
        )


def due_event(
    booking: BookingLike,
    now: datetime,
    approval_window: timedelta | None = None,
) -> BookingEvent | None:
    """Which date-driven transition, if any, the booking is due for at ``now``.

    Used by the status sweep and for lazy evaluation on read; the core owns
    no timer.
    """
    now = as_utc(now)
    today = now.date()
    status = booking.status

    if status == BookingStatus.CONFIRMED and today >= booking.start_date:
        return BookingEvent.CHECK_IN
    if status == BookingStatus.ACTIVE and today > booking.end_date:
        return BookingEvent.COMPLETE
    if status == BookingStatus.APPROVED:
        due = getattr(booking, "payment_due_at", None)
        if due is not None and now > as_utc(due):
            return BookingEvent.CANCEL
    if status == BookingStatus.PENDING_APPROVAL:
        window = approval_window or timedelta(hours=settings.approval_window_hours)
        created = getattr(booking, "created_at", None)
        if created is not None and now > as_utc(created) + window:
            return BookingEvent.CANCEL
    return None


def mark_review_left(booking: BookingLike, actor: ActorRole) -> None:
    """Record that the renter reviewed a completed stay. Allowed once."""
    if actor is not ActorRole.RENTER or booking.status != BookingStatus.COMPLETED:
        raise TransitionRejected(
            "Only the renter of a completed booking can leave a review",
            code="review_not_allowed",
        )
    if booking.review_left:
        raise TransitionRejected("A review was already left for this booking", code="review_already_left", status_code=409)
    booking.review_left = True
    booking.version += 1
