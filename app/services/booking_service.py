"""Booking lifecycle orchestration.

``BookingService`` sequences the client-visible flow
create -> approve -> pay -> confirm (plus reject, cancel, check-in, complete)
by combining the pure state machine with the four collaborators: the booking
repository, the availability index, the payment gateway and the notifier.

Rules every mutating method follows:

* the booking is re-read at the start of every attempt, never cached;
* the caller's authority is checked once, up front, per operation;
* approval and payment require the booking to still hold its dates;
* when the booking already sits in the operation's target status the call
  is a replay: the current booking is returned and no side effect runs again;
* a ``VersionConflict`` on save is retried once (refetch + reapply), then
  surfaced;
* notifications go out only after the new status is saved, and a failing
  notifier never fails the operation.
"""

import asyncio
import hashlib
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from app.bookings.clock import utcnow
from app.bookings.errors import (
    AvailabilityConflict,
    BookingError,
    InvalidDateRange,
    InvalidTransition,
    NotFound,
    PaymentError,
    TransitionRejected,
    ValidationError,
    VersionConflict,
)
from app.bookings.policy import CancellationPolicy, RefundDecision, compute_refund
from app.bookings.ports import (
    AvailabilityIndex,
    BookingFilters,
    BookingRepository,
    CaptureResult,
    Clock,
    Notifier,
    PaymentDetails,
    PaymentGateway,
)
from app.bookings.pricing import CostBreakdown, FeeSchedule, compute_cost
from app.bookings.state_machine import (
    TRANSITIONS,
    ActorRole,
    BookingEvent,
    actor_role_for,
    apply_transition,
    check_transition,
    due_event,
    ensure_frozen_total,
    mark_review_left,
    validate_new_booking,
)
from app.bookings.statuses import HOLDING_STATUSES, BookingStatus
from app.config import settings
from app.models.booking import Booking, booking_reference
from app.models.listing import Listing
from app.models.transaction import Refund, Transaction, transaction_reference
from app.payments.fees import calculate_fees

logger = logging.getLogger(__name__)

MAX_SPECIAL_REQUESTS_LENGTH = 500
_SAVE_ATTEMPTS = 2

_SWEEP_STATUSES = {
    BookingStatus.PENDING_APPROVAL.value,
    BookingStatus.APPROVED.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.ACTIVE.value,
}
_PAID_STATUSES = {BookingStatus.CONFIRMED, BookingStatus.ACTIVE, BookingStatus.COMPLETED}
# Events that require the booking to still hold its dates.
_HOLD_CHECKED_EVENTS = {BookingEvent.APPROVE, BookingEvent.CONFIRM}


@dataclass(frozen=True)
class CreateBookingRequest:
    listing_id: uuid.UUID
    start_date: date
    end_date: date
    guest_count: int = 1
    special_requests: str | None = None


@dataclass(frozen=True)
class PaymentOutcome:
    booking: Booking
    transaction: Transaction
    replayed: bool = False


@dataclass(frozen=True)
class CancellationOutcome:
    booking: Booking
    refund: Refund | None
    decision: RefundDecision | None
    replayed: bool = False


def payment_idempotency_key(booking_id: uuid.UUID, details: PaymentDetails) -> str:
    """Key used for a capture when the client did not send one.

    Stable for the same booking and payment instrument, so a retry after a
    timeout replays the original charge; a different card gets a fresh key.
    """
    instrument = f"{details.method}:{details.token or ''}:{details.card_number or ''}"
    fingerprint = hashlib.sha256(instrument.encode("utf-8")).hexdigest()[:16]
    return f"booking-{booking_id}-capture-{fingerprint}"


def _refundable_amount(transaction: Transaction | None) -> Decimal | None:
    """What a cancellation can give back; a failed payment refunds nothing."""
    if transaction is None or transaction.status == "failed":
        return None
    return transaction.amount


class BookingService:
    """Single entry point for every booking mutation."""

    def __init__(
        self,
        repository: BookingRepository,
        availability: AvailabilityIndex,
        payments: PaymentGateway,
        notifier: Notifier,
        *,
        clock: Clock = utcnow,
        policy: CancellationPolicy | None = None,
        fees: FeeSchedule | None = None,
        payment_timeout: float | None = None,
    ) -> None:
        self.repository = repository
        self.availability = availability
        self.payments = payments
        self.notifier = notifier
        self.clock = clock
        self.policy = policy or CancellationPolicy.from_settings()
        self.fees = fees or FeeSchedule.from_settings()
        self.payment_timeout = payment_timeout if payment_timeout is not None else settings.payment_timeout_seconds

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def quote(
        self,
        listing_id: uuid.UUID,
        start_date: date,
        end_date: date,
        guest_count: int = 1,
    ) -> CostBreakdown:
        """Price a stay without creating or touching any booking."""
        listing = await self._load_listing(listing_id)
        if guest_count > listing.max_guests:
            raise TransitionRejected(
                f"This listing accommodates at most {listing.max_guests} guests",
                code="capacity_exceeded",
                status_code=422,
            )
        return compute_cost(
            listing.nightly_rate,
            start_date,
            end_date,
            guest_count,
            self._fee_schedule(listing),
        )

    async def check_availability(self, listing_id: uuid.UUID, start_date: date, end_date: date) -> bool:
        if end_date <= start_date:
            raise InvalidDateRange("End date must be after start date")
        await self._load_listing(listing_id)
        return await self.availability.check_available(listing_id, start_date, end_date)

    async def get_booking(self, booking_id: uuid.UUID, user_id: uuid.UUID, *, is_admin: bool = False) -> Booking:
        booking = await self._load(booking_id)
        if not is_admin:
            self._party_role(booking, user_id)
        return booking

    async def list_bookings(self, filters: BookingFilters) -> tuple[list[Booking], int]:
        return await self.repository.list_bookings(filters)

    async def get_booking_stats(self, user_id: uuid.UUID) -> dict[str, Any]:
        return await self.repository.booking_stats(user_id)

    async def get_transaction(self, booking_id: uuid.UUID, user_id: uuid.UUID) -> Transaction | None:
        booking = await self._load(booking_id)
        self._party_role(booking, user_id)
        return await self.repository.get_transaction_for_booking(booking_id)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def create_booking(self, renter_id: uuid.UUID, request: CreateBookingRequest) -> Booking:
        """Create a booking request in ``pending_approval`` and hold the dates.

        Raises:
            ValidationError: malformed dates, guest count or special requests.
            NotFound: the listing does not exist.
            AvailabilityConflict: the listing is inactive or the dates are held.
            TransitionRejected: capacity exceeded or the renter owns the listing.
        """
        now = self.clock()
        if request.start_date < now.date():
            raise InvalidDateRange("Start date cannot be in the past", details={"start_date": request.start_date.isoformat()})
        if request.special_requests and len(request.special_requests) > MAX_SPECIAL_REQUESTS_LENGTH:
            raise ValidationError(
                f"Special requests cannot exceed {MAX_SPECIAL_REQUESTS_LENGTH} characters",
                code="special_requests_too_long",
            )

        listing = await self._load_listing(request.listing_id)
        breakdown = compute_cost(
            listing.nightly_rate,
            request.start_date,
            request.end_date,
            request.guest_count,
            self._fee_schedule(listing),
        )
        validate_new_booking(
            renter_id=renter_id,
            owner_id=listing.owner_id,
            guest_count=request.guest_count,
            max_guests=listing.max_guests,
            listing_active=listing.is_bookable,
        )
        if not await self.availability.check_available(listing.id, request.start_date, request.end_date):
            raise AvailabilityConflict(
                "Selected dates are not available. Please choose different dates.",
                details={"start_date": request.start_date.isoformat(), "end_date": request.end_date.isoformat()},
            )

        booking_id = uuid.uuid4()
        booking = Booking(
            id=booking_id,
            reference_number=booking_reference(booking_id),
            listing_id=listing.id,
            owner_id=listing.owner_id,
            renter_id=renter_id,
            start_date=request.start_date,
            end_date=request.end_date,
            guest_count=request.guest_count,
            special_requests=request.special_requests,
            currency=settings.currency,
            status=BookingStatus.PENDING_APPROVAL.value,
            review_left=False,
            version=1,
            created_at=now,
            **breakdown.as_dict(),
        )
        await self.repository.add_booking(booking)
        # The hold re-checks under a listing lock; a lost race raises and the
        # surrounding unit of work rolls the new booking back.
        await self.availability.hold(listing.id, booking.start_date, booking.end_date, booking.id)

        logger.info(
            "Booking %s created for listing %s (%s..%s, total %s)",
            booking.reference_number,
            listing.id,
            booking.start_date,
            booking.end_date,
            booking.total_cost,
        )
        await self._notify(listing.owner_id, "booking_requested", self._payload(booking, listing))
        return booking

    # ------------------------------------------------------------------
    # approve / reject / check-in / complete
    # ------------------------------------------------------------------

    async def approve_booking(self, booking_id: uuid.UUID, actor_id: uuid.UUID) -> Booking:
        booking, changed = await self._run_event(booking_id, BookingEvent.APPROVE, actor_id=actor_id)
        if changed:
            await self._notify(booking.renter_id, "booking_approved", await self._payload_for(booking))
        return booking

    async def reject_booking(self, booking_id: uuid.UUID, actor_id: uuid.UUID, reason: str | None = None) -> Booking:
        booking, changed = await self._run_event(booking_id, BookingEvent.REJECT, actor_id=actor_id, reason=reason)
        if changed:
            await self._release_if_finished(booking)
            await self._notify(
                booking.renter_id,
                "booking_rejected",
                await self._payload_for(booking, reason=reason or "No specific reason provided"),
            )
        return booking

    async def check_in_booking(self, booking_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> Booking:
        booking, _ = await self._run_event(booking_id, BookingEvent.CHECK_IN, actor_id=actor_id)
        return booking

    async def complete_booking(self, booking_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> Booking:
        booking, changed = await self._run_event(booking_id, BookingEvent.COMPLETE, actor_id=actor_id)
        if changed:
            await self._release_if_finished(booking)
            await self._notify(booking.renter_id, "booking_completed", await self._payload_for(booking))
        return booking

    async def record_review(self, booking_id: uuid.UUID, actor_id: uuid.UUID) -> Booking:
        """Flag that the renter reviewed the stay; enables nothing else."""
        for attempt in range(1, _SAVE_ATTEMPTS + 1):
            booking = await self._load(booking_id)
            role = self._party_role(booking, actor_id)
            expected = booking.version
            mark_review_left(booking, role)
            try:
                await self.repository.save_booking(booking, expected)
            except VersionConflict:
                if attempt == _SAVE_ATTEMPTS:
                    raise
                continue
            return booking
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # pay -> confirm
    # ------------------------------------------------------------------

    async def initiate_payment(
        self,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        details: PaymentDetails,
        timeout: float | None = None,
    ) -> PaymentOutcome:
        """Capture the frozen total and confirm the booking.

        A capture failure or timeout raises ``PaymentError`` and leaves the
        booking ``approved`` so the renter can retry. Calling again after a
        success returns the existing transaction without charging again. A
        capture that cannot be turned into a confirmation (the booking moved
        on, or the save kept conflicting) is refunded before the error is
        raised.
        """
        booking = await self._load(booking_id)
        role = self._party_role(booking, actor_id)
        self._authorize(role, BookingEvent.CONFIRM)

        if booking.status in _PAID_STATUSES:
            return await self._payment_replay(booking)

        now = self.clock()
        check_transition(booking, BookingEvent.CONFIRM, role, now)
        await self._ensure_hold(booking)

        key = details.idempotency_key or payment_idempotency_key(booking.id, details)
        capture = await self._capture(booking, details, key, timeout)

        try:
            ensure_frozen_total(booking, capture.amount)
            for attempt in range(1, _SAVE_ATTEMPTS + 1):
                if attempt > 1:
                    booking = await self._load(booking_id)
                    if booking.status in _PAID_STATUSES:
                        replay = await self._payment_replay(booking)
                        if replay.transaction.gateway_reference != capture.reference:
                            await self._void_capture(booking_id, capture, key)
                        return replay
                expected = booking.version
                apply_transition(booking, BookingEvent.CONFIRM, role, now=now)
                try:
                    await self.repository.save_booking(booking, expected)
                except VersionConflict:
                    if attempt == _SAVE_ATTEMPTS:
                        raise
                    logger.info("Version conflict confirming booking %s, retrying", booking_id)
                    continue
                break
        except BookingError:
            await self._void_capture(booking_id, capture, key)
            raise

        transaction = self._build_transaction(booking, details, capture, key, now)
        await self.repository.add_transaction(transaction)
        logger.info(
            "Booking %s confirmed with payment %s (%s %s)",
            booking.reference_number,
            transaction.reference_number,
            transaction.amount,
            transaction.currency,
        )

        payload = await self._payload_for(booking, transaction_reference=transaction.reference_number)
        await self._notify(booking.renter_id, "booking_confirmed", payload)
        await self._notify(booking.owner_id, "booking_confirmed", payload)
        return PaymentOutcome(booking=booking, transaction=transaction)

    async def _void_capture(self, booking_id: uuid.UUID, capture: CaptureResult, key: str) -> None:
        """Give back a capture that no booking confirmation will own."""
        logger.warning("Refunding capture %s: booking %s could not be confirmed", capture.reference, booking_id)
        try:
            await self.payments.refund(
                capture.reference,
                capture.amount,
                capture.currency,
                idempotency_key=f"{key}-void",
            )
        except PaymentError:
            logger.exception(
                "Could not refund orphaned capture %s for booking %s (key %s)",
                capture.reference,
                booking_id,
                key,
            )

    async def _capture(
        self,
        booking: Booking,
        details: PaymentDetails,
        key: str,
        timeout: float | None,
    ) -> CaptureResult:
        limit = timeout if timeout is not None else self.payment_timeout
        try:
            return await asyncio.wait_for(
                self.payments.capture(
                    booking.total_cost,
                    booking.currency,
                    details,
                    idempotency_key=key,
                    metadata={"booking_id": str(booking.id), "reference_number": booking.reference_number},
                ),
                timeout=limit,
            )
        except TimeoutError:
            logger.warning("Payment capture for booking %s timed out after %ss", booking.id, limit)
            raise PaymentError(
                "The payment processor did not respond in time. It is safe to retry.",
                code="payment_timeout",
            ) from None

    async def _payment_replay(self, booking: Booking) -> PaymentOutcome:
        transaction = await self.repository.get_transaction_for_booking(booking.id)
        if transaction is None:
            raise InvalidTransition(
                f"Booking is {booking.status} without a payment record",
                current_status=booking.status,
                event=BookingEvent.CONFIRM.value,
            )
        logger.info("Payment for booking %s already completed; replaying result", booking.id)
        return PaymentOutcome(booking=booking, transaction=transaction, replayed=True)

    @staticmethod
    def _build_transaction(
        booking: Booking,
        details: PaymentDetails,
        capture: CaptureResult,
        key: str,
        now: datetime,
    ) -> Transaction:
        fees = calculate_fees(capture.amount)
        transaction_id = uuid.uuid4()
        return Transaction(
            id=transaction_id,
            booking_id=booking.id,
            payer_id=booking.renter_id,
            recipient_id=booking.owner_id,
            reference_number=transaction_reference(transaction_id),
            amount=capture.amount,
            currency=capture.currency,
            status=capture.status,
            payment_method=details.method,
            gateway_reference=capture.reference,
            idempotency_key=key,
            card_last_four=capture.card_last_four,
            card_brand=capture.card_brand,
            platform_fee=fees.platform_fee,
            processing_fee=fees.processing_fee,
            net_amount=fees.net_amount,
            created_at=now,
            completed_at=now if capture.status == "completed" else None,
        )

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    async def cancel_booking(
        self,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID | None,
        reason: str | None = None,
    ) -> CancellationOutcome:
        """Cancel on behalf of either party (or the system when ``actor_id`` is None).

        The cancellation is saved first and the refund is sent only after that
        save succeeded. A refund the gateway refuses raises ``PaymentError``,
        and the surrounding unit of work rolls the cancellation back.
        """
        for attempt in range(1, _SAVE_ATTEMPTS + 1):
            booking = await self._load(booking_id)
            role = ActorRole.SYSTEM if actor_id is None else self._party_role(booking, actor_id)
            self._authorize(role, BookingEvent.CANCEL)
            if booking.status == BookingStatus.CANCELLED:
                return CancellationOutcome(booking=booking, refund=None, decision=None, replayed=True)

            now = self.clock()
            expected = booking.version
            transaction = None
            if booking.status == BookingStatus.CONFIRMED:
                transaction = await self.repository.get_transaction_for_booking(booking.id)
            decision = compute_refund(booking, _refundable_amount(transaction), now, role, self.policy)

            apply_transition(booking, BookingEvent.CANCEL, role, now=now, reason=reason)
            try:
                await self.repository.save_booking(booking, expected)
            except VersionConflict:
                if attempt == _SAVE_ATTEMPTS:
                    raise
                logger.info("Version conflict cancelling booking %s, retrying", booking_id)
                continue
            break

        refund = None
        if transaction is not None and decision.is_refund:
            refund_reference = await self.payments.refund(
                transaction.gateway_reference,
                decision.amount,
                transaction.currency,
                idempotency_key=f"booking-{booking.id}-refund",
            )
            refund = Refund(
                id=uuid.uuid4(),
                transaction_id=transaction.id,
                booking_id=booking.id,
                amount=decision.amount,
                refund_percent=decision.percent,
                policy_rule=decision.rule,
                reason=reason,
                gateway_reference=refund_reference,
                created_at=now,
            )
            await self.repository.add_refund(refund)

        await self._release_if_finished(booking)

        logger.info(
            "Booking %s cancelled by %s (refund %s, rule %s)",
            booking.reference_number,
            role.value,
            decision.amount,
            decision.rule,
        )
        payload = await self._payload_for(
            booking,
            cancelled_by=role.value,
            reason=reason or "No reason provided",
            refund_amount=decision.amount,
        )
        await self._notify(booking.renter_id, "booking_cancelled", payload)
        await self._notify(booking.owner_id, "booking_cancelled", payload)
        return CancellationOutcome(booking=booking, refund=refund, decision=decision)

    # ------------------------------------------------------------------
    # date-driven sweep
    # ------------------------------------------------------------------

    async def run_status_sweep(self, limit: int = 500) -> dict[str, int]:
        """Apply every date-driven transition that is due.

        Meant to be triggered by an external scheduler; a booking that moved
        on concurrently is skipped, not failed.
        """
        counts: Counter[str] = Counter()
        candidates = await self.repository.list_due_bookings(_SWEEP_STATUSES, limit)
        for candidate in candidates:
            booking_id = candidate.id
            event = due_event(candidate, self.clock())
            # A confirmed stay that already ended needs check-in then completion.
            while event is not None:
                try:
                    booking = await self._apply_due_event(booking_id, event, candidate.status)
                except (InvalidTransition, TransitionRejected, VersionConflict) as exc:
                    logger.info("Sweep skipped booking %s (%s): %s", booking_id, event.value, exc.code)
                    counts["skipped"] += 1
                    break
                counts[event.value] += 1
                candidate = booking
                event = due_event(booking, self.clock())
        logger.info("Status sweep finished: %s", dict(counts))
        return dict(counts)

    async def _apply_due_event(self, booking_id: uuid.UUID, event: BookingEvent, status: str) -> Booking:
        if event is BookingEvent.CHECK_IN:
            return await self.check_in_booking(booking_id)
        if event is BookingEvent.COMPLETE:
            return await self.complete_booking(booking_id)
        if status == BookingStatus.APPROVED:
            reason = "Payment was not completed before the payment window closed"
        else:
            reason = "The owner did not respond to the request in time"
        outcome = await self.cancel_booking(booking_id, None, reason=reason)
        return outcome.booking

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _run_event(
        self,
        booking_id: uuid.UUID,
        event: BookingEvent,
        *,
        actor_id: uuid.UUID | None = None,
        reason: str | None = None,
    ) -> tuple[Booking, bool]:
        """Apply a side-effect-free transition; returns ``(booking, changed)``."""
        target = TRANSITIONS[event].target
        for attempt in range(1, _SAVE_ATTEMPTS + 1):
            booking = await self._load(booking_id)
            role = ActorRole.SYSTEM if actor_id is None else self._party_role(booking, actor_id)
            self._authorize(role, event)
            if booking.status == target:
                logger.info("Booking %s already %s; nothing to do", booking_id, target.value)
                return booking, False

            now = self.clock()
            if event in _HOLD_CHECKED_EVENTS:
                check_transition(booking, event, role, now)
                await self._ensure_hold(booking)

            expected = booking.version
            apply_transition(booking, event, role, now=now, reason=reason)
            try:
                await self.repository.save_booking(booking, expected)
            except VersionConflict:
                if attempt == _SAVE_ATTEMPTS:
                    raise
                logger.info("Version conflict on %s for booking %s, retrying", event.value, booking_id)
                continue
            logger.info("Booking %s: %s -> %s", booking.reference_number, event.value, target.value)
            return booking, True
        raise AssertionError("unreachable")

    async def _ensure_hold(self, booking: Booking) -> None:
        if not await self.availability.has_hold(booking.id):
            raise AvailabilityConflict(
                "The dates for this booking are no longer held. Please send a new request.",
                code="hold_released",
                details={"booking_id": str(booking.id), "status": booking.status},
            )

    async def _release_if_finished(self, booking: Booking) -> None:
        if booking.status not in HOLDING_STATUSES:
            await self.availability.release(booking.listing_id, booking.start_date, booking.end_date, booking.id)

    async def _load(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.repository.get_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found", code="booking_not_found")
        return booking

    def _fee_schedule(self, listing: Listing) -> FeeSchedule:
        return replace(self.fees, cleaning_fee=listing.cleaning_fee)

    async def _load_listing(self, listing_id: uuid.UUID) -> Listing:
        listing = await self.repository.get_listing(listing_id)
        if listing is None:
            raise NotFound("Listing not found", code="listing_not_found")
        return listing

    @staticmethod
    def _party_role(booking: Booking, user_id: uuid.UUID) -> ActorRole:
        role = actor_role_for(booking, user_id)
        if role is None:
            # Outsiders get the same answer as for a missing booking.
            raise NotFound("Booking not found", code="booking_not_found")
        return role

    @staticmethod
    def _authorize(role: ActorRole, event: BookingEvent) -> None:
        actors = TRANSITIONS[event].actors
        if role not in actors:
            permitted = " or ".join(sorted(actor.value for actor in actors))
            raise TransitionRejected(
                f"Only the {permitted} can {event.value.replace('_', ' ')} this booking",
                code="actor_not_permitted",
                details={"actor": role.value, "event": event.value},
            )

    def _payload(self, booking: Booking, listing: Listing | None, **extra: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "booking_id": str(booking.id),
            "reference_number": booking.reference_number,
            "listing_title": listing.title if listing is not None else "your listing",
            "start_date": booking.start_date.isoformat(),
            "end_date": booking.end_date.isoformat(),
            "guest_count": booking.guest_count,
            "total_cost": booking.total_cost,
            "currency": booking.currency,
            "status": booking.status,
            "payment_due_at": booking.payment_due_at.isoformat() if booking.payment_due_at else None,
        }
        payload.update(extra)
        return payload

    async def _payload_for(self, booking: Booking, **extra: Any) -> dict[str, Any]:
        listing = await self.repository.get_listing(booking.listing_id)
        return self._payload(booking, listing, **extra)

    async def _notify(self, user_id: uuid.UUID, event: str, payload: dict[str, Any]) -> None:
        try:
            await self.notifier.notify(user_id, event, payload)
        except Exception:
            logger.exception("Failed to send %s notification to user %s", event, user_id)
