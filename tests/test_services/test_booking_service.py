"""BookingService lifecycle tests against in-memory collaborators."""

import asyncio
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.bookings.errors import (
    AvailabilityConflict,
    InvalidDateRange,
    InvalidTransition,
    NotFound,
    PaymentError,
    TransitionRejected,
    ValidationError,
    VersionConflict,
)
from app.bookings.ports import BookingFilters, PaymentDetails
from app.bookings.statuses import BookingStatus
from app.payments.mock_gateway import MockPaymentGateway
from app.services.booking_service import BookingService, CreateBookingRequest, payment_idempotency_key
from tests.fakes import (
    CARD,
    DECLINED_CARD,
    EXAMPLE_FEES,
    ConflictOnceRepository,
    FrozenClock,
    InMemoryAvailability,
    InMemoryBookingRepository,
    RecordingNotifier,
    SlowCaptureGateway,
    make_listing,
)

pytestmark = pytest.mark.asyncio

OWNER = uuid.uuid4()
RENTER = uuid.uuid4()
OUTSIDER = uuid.uuid4()

JUNE_1 = date(2024, 6, 1)
JUNE_4 = date(2024, 6, 4)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def repo() -> InMemoryBookingRepository:
    return InMemoryBookingRepository()


@pytest.fixture
def availability() -> InMemoryAvailability:
    return InMemoryAvailability()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway(delay_seconds=0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def listing(repo):
    return repo.add_listing(make_listing(OWNER))


@pytest.fixture
def service(repo, availability, gateway, notifier, clock) -> BookingService:
    return BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)


def _request(listing, start=JUNE_1, end=JUNE_4, guests=2, **extra) -> CreateBookingRequest:
    return CreateBookingRequest(listing_id=listing.id, start_date=start, end_date=end, guest_count=guests, **extra)


async def _confirmed(service, listing):
    booking = await service.create_booking(RENTER, _request(listing))
    await service.approve_booking(booking.id, OWNER)
    outcome = await service.initiate_payment(booking.id, RENTER, CARD)
    return outcome


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreateBooking:
    async def test_freezes_cost_breakdown(self, service, listing, repo, availability) -> None:
        booking = await service.create_booking(RENTER, _request(listing))

        assert booking.status == BookingStatus.PENDING_APPROVAL
        assert booking.nights == 3
        assert booking.base_price == Decimal("300.00")
        assert booking.cleaning_fee == Decimal("50.00")
        assert booking.service_fee == Decimal("30.00")
        assert booking.tax_amount == Decimal("30.40")
        assert booking.total_cost == Decimal("410.40")
        assert booking.version == 1
        assert booking.reference_number.startswith("BK")
        assert booking.owner_id == OWNER
        assert repo.stored(booking.id).total_cost == Decimal("410.40")
        assert booking.id in availability.holds

    async def test_notifies_owner(self, service, listing, notifier) -> None:
        await service.create_booking(RENTER, _request(listing))
        assert notifier.sent[0][0] == OWNER
        assert notifier.events() == ["booking_requested"]

    async def test_overlapping_request_rejected(self, service, listing) -> None:
        await service.create_booking(RENTER, _request(listing))
        with pytest.raises(AvailabilityConflict) as exc_info:
            await service.create_booking(uuid.uuid4(), _request(listing, start=date(2024, 6, 3), end=date(2024, 6, 6)))
        assert exc_info.value.code == "dates_unavailable"

    async def test_back_to_back_stays_allowed(self, service, listing) -> None:
        await service.create_booking(RENTER, _request(listing))
        second = await service.create_booking(uuid.uuid4(), _request(listing, start=JUNE_4, end=date(2024, 6, 6)))
        assert second.status == BookingStatus.PENDING_APPROVAL

    async def test_owner_cannot_book_own_listing(self, service, listing) -> None:
        with pytest.raises(TransitionRejected) as exc_info:
            await service.create_booking(OWNER, _request(listing))
        assert exc_info.value.code == "owner_cannot_book"

    async def test_capacity_exceeded(self, service, listing) -> None:
        with pytest.raises(TransitionRejected) as exc_info:
            await service.create_booking(RENTER, _request(listing, guests=5))
        assert exc_info.value.code == "capacity_exceeded"
        assert exc_info.value.status_code == 422

    async def test_inactive_listing(self, service, repo) -> None:
        inactive = repo.add_listing(make_listing(OWNER, status="inactive"))
        with pytest.raises(AvailabilityConflict) as exc_info:
            await service.create_booking(RENTER, _request(inactive))
        assert exc_info.value.code == "listing_inactive"

    async def test_unknown_listing(self, service) -> None:
        with pytest.raises(NotFound):
            await service.create_booking(RENTER, CreateBookingRequest(uuid.uuid4(), JUNE_1, JUNE_4))

    async def test_start_in_past(self, service, listing) -> None:
        with pytest.raises(InvalidDateRange):
            await service.create_booking(RENTER, _request(listing, start=date(2024, 4, 1), end=date(2024, 4, 3)))

    async def test_end_before_start(self, service, listing) -> None:
        with pytest.raises(InvalidDateRange):
            await service.create_booking(RENTER, _request(listing, start=JUNE_4, end=JUNE_1))

    async def test_special_requests_too_long(self, service, listing) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.create_booking(RENTER, _request(listing, special_requests="x" * 501))
        assert exc_info.value.code == "special_requests_too_long"

    async def test_listing_price_change_does_not_reprice(self, service, listing, repo) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        listing.nightly_rate = Decimal("999.00")
        await service.approve_booking(booking.id, OWNER)
        assert repo.stored(booking.id).total_cost == Decimal("410.40")


# ---------------------------------------------------------------------------
# approve / reject
# ---------------------------------------------------------------------------


class TestApproveReject:
    async def test_approve_sets_payment_deadline(self, service, listing, clock, notifier) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        approved = await service.approve_booking(booking.id, OWNER)

        assert approved.status == BookingStatus.APPROVED
        assert approved.version == 2
        assert approved.approved_at == clock.now
        assert approved.payment_due_at == datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
        assert notifier.events() == ["booking_requested", "booking_approved"]

    async def test_renter_cannot_approve(self, service, listing) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        with pytest.raises(TransitionRejected) as exc_info:
            await service.approve_booking(booking.id, RENTER)
        assert exc_info.value.code == "actor_not_permitted"

    async def test_outsider_gets_not_found(self, service, listing) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        with pytest.raises(NotFound):
            await service.approve_booking(booking.id, OUTSIDER)

    async def test_reject_releases_hold_without_payment(self, service, listing, repo, availability, gateway) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        rejected = await service.reject_booking(booking.id, OWNER, reason="Under renovation")

        assert rejected.status == BookingStatus.REJECTED
        assert rejected.cancellation_reason == "Under renovation"
        assert booking.id not in availability.holds
        assert repo.transactions == {}
        assert gateway.capture_count == 0
        assert await availability.check_available(listing.id, JUNE_1, JUNE_4)

    async def test_approve_twice_is_a_replay(self, service, listing, repo, notifier) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        first = await service.approve_booking(booking.id, OWNER)
        second = await service.approve_booking(booking.id, OWNER)

        assert second.status == BookingStatus.APPROVED
        assert second.version == first.version
        assert repo.saves == 1
        assert notifier.events().count("booking_approved") == 1

    async def test_concurrent_approve_and_reject(self, listing, availability, gateway, notifier, clock) -> None:
        repo = InMemoryBookingRepository(yield_on_read=True)
        repo.add_listing(listing)
        service = BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)
        booking = await service.create_booking(RENTER, _request(listing))

        results = await asyncio.gather(
            service.approve_booking(booking.id, OWNER),
            service.reject_booking(booking.id, OWNER),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidTransition)
        assert repo.stored(booking.id).status in (BookingStatus.APPROVED, BookingStatus.REJECTED)

    async def test_version_conflict_retried_once(self, listing, availability, gateway, notifier, clock) -> None:
        repo = ConflictOnceRepository(conflicts=1)
        repo.add_listing(listing)
        service = BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)
        booking = await service.create_booking(RENTER, _request(listing))

        approved = await service.approve_booking(booking.id, OWNER)

        assert approved.status == BookingStatus.APPROVED
        assert repo.stored(booking.id).status == BookingStatus.APPROVED

    async def test_second_version_conflict_surfaces(self, listing, availability, gateway, notifier, clock) -> None:
        repo = ConflictOnceRepository(conflicts=2)
        repo.add_listing(listing)
        service = BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)
        booking = await service.create_booking(RENTER, _request(listing))

        with pytest.raises(VersionConflict):
            await service.approve_booking(booking.id, OWNER)
        assert repo.stored(booking.id).status == BookingStatus.PENDING_APPROVAL

    async def test_released_hold_blocks_approval(self, service, listing, availability, repo) -> None:
        first = await service.create_booking(RENTER, _request(listing))
        await availability.release(listing.id, JUNE_1, JUNE_4, first.id)
        second = await service.create_booking(OUTSIDER, _request(listing))
        await service.approve_booking(second.id, OWNER)

        with pytest.raises(AvailabilityConflict) as exc_info:
            await service.approve_booking(first.id, OWNER)

        assert exc_info.value.code == "hold_released"
        assert repo.stored(first.id).status == BookingStatus.PENDING_APPROVAL
        assert repo.stored(second.id).status == BookingStatus.APPROVED


# ---------------------------------------------------------------------------
# payment
# ---------------------------------------------------------------------------


class TestInitiatePayment:
    async def test_confirms_and_records_transaction(self, service, listing, repo, notifier) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)

        outcome = await service.initiate_payment(booking.id, RENTER, CARD)

        assert outcome.booking.status == BookingStatus.CONFIRMED
        assert outcome.transaction.amount == Decimal("410.40")
        assert outcome.transaction.payer_id == RENTER
        assert outcome.transaction.recipient_id == OWNER
        assert outcome.transaction.card_last_four == "4242"
        assert outcome.transaction.platform_fee == Decimal("12.31")
        assert outcome.transaction.processing_fee == Decimal("12.20")
        assert outcome.transaction.net_amount == Decimal("385.89")
        stored = repo.stored(booking.id)
        assert stored.total_cost == booking.total_cost
        assert stored.base_price == booking.base_price
        assert stored.tax_amount == booking.tax_amount
        assert notifier.events()[-2:] == ["booking_confirmed", "booking_confirmed"]

    async def test_pending_booking_cannot_be_paid(self, service, listing, gateway) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        with pytest.raises(InvalidTransition):
            await service.initiate_payment(booking.id, RENTER, CARD)
        assert gateway.capture_count == 0

    async def test_owner_cannot_pay(self, service, listing) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)
        with pytest.raises(TransitionRejected):
            await service.initiate_payment(booking.id, OWNER, CARD)

    async def test_declined_card_leaves_booking_approved(self, service, listing, repo) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)

        with pytest.raises(PaymentError) as exc_info:
            await service.initiate_payment(booking.id, RENTER, DECLINED_CARD)

        assert exc_info.value.code == "card_declined"
        assert exc_info.value.retryable is True
        assert repo.stored(booking.id).status == BookingStatus.APPROVED
        assert repo.transactions == {}

        outcome = await service.initiate_payment(booking.id, RENTER, CARD)
        assert outcome.booking.status == BookingStatus.CONFIRMED

    async def test_expired_payment_window(self, service, listing, clock) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)
        clock.advance(hours=25)

        with pytest.raises(TransitionRejected) as exc_info:
            await service.initiate_payment(booking.id, RENTER, CARD)
        assert exc_info.value.code == "payment_window_expired"

    async def test_second_call_replays_without_charging(self, service, listing, repo, gateway) -> None:
        first = await _confirmed(service, listing)
        second = await service.initiate_payment(first.booking.id, RENTER, CARD)

        assert second.replayed is True
        assert second.transaction is repo.transactions[first.booking.id]
        assert gateway.capture_count == 1

    async def test_timeout_then_retry_charges_once(self, repo, availability, notifier, clock, listing) -> None:
        gateway = SlowCaptureGateway(stall_seconds=0.5)
        service = BookingService(
            repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES, payment_timeout=0.05
        )
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)

        with pytest.raises(PaymentError) as exc_info:
            await service.initiate_payment(booking.id, RENTER, CARD)
        assert exc_info.value.code == "payment_timeout"
        assert repo.stored(booking.id).status == BookingStatus.APPROVED

        outcome = await service.initiate_payment(booking.id, RENTER, CARD)

        assert outcome.booking.status == BookingStatus.CONFIRMED
        assert gateway.calls == 2
        assert gateway.capture_count == 1
        assert outcome.transaction.amount == Decimal("410.40")

    async def test_client_idempotency_key_is_forwarded(self, service, listing, repo) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)
        details = PaymentDetails(method="card", card_number="4242424242424242", idempotency_key="client-key-1")

        outcome = await service.initiate_payment(booking.id, RENTER, details)
        assert outcome.transaction.idempotency_key == "client-key-1"

    def test_derived_key_is_stable_per_instrument(self) -> None:
        booking_id = uuid.uuid4()
        other_card = PaymentDetails(method="card", card_number="5555555555554444")
        assert payment_idempotency_key(booking_id, CARD) == payment_idempotency_key(booking_id, CARD)
        assert payment_idempotency_key(booking_id, CARD) != payment_idempotency_key(booking_id, other_card)

    async def test_released_hold_blocks_payment(self, service, listing, availability, repo, gateway) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)
        await availability.release(listing.id, JUNE_1, JUNE_4, booking.id)

        with pytest.raises(AvailabilityConflict) as exc_info:
            await service.initiate_payment(booking.id, RENTER, CARD)

        assert exc_info.value.code == "hold_released"
        assert gateway.capture_count == 0
        assert repo.stored(booking.id).status == BookingStatus.APPROVED

    async def test_capture_refunded_when_confirmation_cannot_be_saved(
        self, availability, gateway, notifier, clock, listing
    ) -> None:
        repo = ConflictOnceRepository(conflicts=0)
        repo.add_listing(listing)
        service = BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)
        repo.conflicts = 2

        with pytest.raises(VersionConflict):
            await service.initiate_payment(booking.id, RENTER, CARD)

        assert gateway.capture_count == 1
        assert gateway.refund_count == 1
        assert repo.transactions == {}
        assert repo.stored(booking.id).status == BookingStatus.APPROVED
        assert "booking_confirmed" not in notifier.events()

    async def test_capture_refunded_when_booking_cancelled_meanwhile(
        self, availability, gateway, notifier, clock, listing
    ) -> None:
        class CancelledDuringCapture(InMemoryBookingRepository):
            """The first confirmation save loses to a cancellation."""

            async def save_booking(self, booking, expected_version):
                if booking.status == BookingStatus.CONFIRMED and self.rows[booking.id]["status"] == "approved":
                    self.rows[booking.id].update(status="cancelled", version=self.rows[booking.id]["version"] + 1)
                await super().save_booking(booking, expected_version)

        repo = CancelledDuringCapture()
        repo.add_listing(listing)
        service = BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)
        booking = await service.create_booking(RENTER, _request(listing))
        await service.approve_booking(booking.id, OWNER)

        with pytest.raises(InvalidTransition):
            await service.initiate_payment(booking.id, RENTER, CARD)

        assert gateway.refund_count == 1
        assert repo.transactions == {}
        assert repo.stored(booking.id).status == BookingStatus.CANCELLED


# ---------------------------------------------------------------------------
# cancel
# ---------------------------------------------------------------------------


class TestCancelBooking:
    async def test_renter_cancels_pending_request(self, service, listing, availability, gateway) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        outcome = await service.cancel_booking(booking.id, RENTER, reason="Plans changed")

        assert outcome.booking.status == BookingStatus.CANCELLED
        assert outcome.booking.cancelled_by == "renter"
        assert outcome.refund is None
        assert outcome.decision.rule == "no_payment"
        assert booking.id not in availability.holds

    async def test_partial_refund_two_days_before_start(self, service, listing, repo, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 5, 30, 12, 0, tzinfo=timezone.utc))

        outcome = await service.cancel_booking(confirmed.booking.id, RENTER)

        assert outcome.booking.status == BookingStatus.CANCELLED
        assert outcome.decision.rule == "late"
        assert outcome.refund.amount == Decimal("205.20")
        assert outcome.refund.amount < confirmed.transaction.amount
        assert repo.refunds == [outcome.refund]
        # The capture record itself is never rewritten.
        assert repo.transactions[confirmed.booking.id].amount == Decimal("410.40")

    async def test_free_window_full_refund(self, service, listing, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.advance(hours=12)

        outcome = await service.cancel_booking(confirmed.booking.id, RENTER)
        assert outcome.decision.rule == "free_window"
        assert outcome.refund.amount == Decimal("410.40")

    async def test_owner_cancellation_refunds_in_full(self, service, listing, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 5, 31, 9, 0, tzinfo=timezone.utc))

        outcome = await service.cancel_booking(confirmed.booking.id, OWNER, reason="Pipe burst")
        assert outcome.decision.rule == "host_cancelled"
        assert outcome.refund.amount == Decimal("410.40")

    async def test_cancel_after_start_rejected(self, service, listing, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 6, 1, 15, 0, tzinfo=timezone.utc))

        with pytest.raises(TransitionRejected) as exc_info:
            await service.cancel_booking(confirmed.booking.id, RENTER)
        assert exc_info.value.code == "cancellation_window_closed"

    async def test_refund_failure_surfaces_without_side_effects(
        self, repo, availability, notifier, clock, listing
    ) -> None:
        class RefusingGateway(MockPaymentGateway):
            async def refund(self, reference, amount, currency, *, idempotency_key):
                raise PaymentError("Refund could not be processed", code="refund_failed")

        service = BookingService(repo, availability, RefusingGateway(0), notifier, clock=clock, fees=EXAMPLE_FEES)
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 5, 20, tzinfo=timezone.utc))

        with pytest.raises(PaymentError):
            await service.cancel_booking(confirmed.booking.id, RENTER)
        # The request's unit of work rolls the saved cancellation back.
        assert repo.refunds == []
        assert confirmed.booking.id in availability.holds
        assert "booking_cancelled" not in notifier.events()

    async def test_refund_not_sent_when_cancellation_cannot_be_saved(
        self, availability, gateway, notifier, clock, listing
    ) -> None:
        repo = ConflictOnceRepository(conflicts=0)
        repo.add_listing(listing)
        service = BookingService(repo, availability, gateway, notifier, clock=clock, fees=EXAMPLE_FEES)
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 5, 20, tzinfo=timezone.utc))
        repo.conflicts = 2

        with pytest.raises(VersionConflict):
            await service.cancel_booking(confirmed.booking.id, RENTER)

        assert gateway.refund_count == 0
        assert repo.refunds == []
        assert repo.stored(confirmed.booking.id).status == BookingStatus.CONFIRMED
        assert confirmed.booking.id in availability.holds

    async def test_completion_releases_hold(self, service, listing, availability, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc))
        await service.check_in_booking(confirmed.booking.id, OWNER)
        assert confirmed.booking.id in availability.holds

        clock.set(datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc))
        await service.complete_booking(confirmed.booking.id, OWNER)
        assert confirmed.booking.id not in availability.holds

    async def test_cancel_twice_is_a_replay(self, service, listing, repo) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        await service.cancel_booking(booking.id, RENTER)
        saves = repo.saves

        outcome = await service.cancel_booking(booking.id, RENTER)
        assert outcome.replayed is True
        assert repo.saves == saves


# ---------------------------------------------------------------------------
# terminal states, stay lifecycle and reviews
# ---------------------------------------------------------------------------


class TestTerminalStates:
    @pytest.mark.parametrize("finish", ["reject", "cancel"])
    async def test_no_event_leaves_a_terminal_state(self, service, listing, finish) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        if finish == "reject":
            await service.reject_booking(booking.id, OWNER)
        else:
            await service.cancel_booking(booking.id, RENTER)

        with pytest.raises(InvalidTransition) as exc_info:
            await service.approve_booking(booking.id, OWNER)
        assert exc_info.value.code == "booking_finalized"
        with pytest.raises(InvalidTransition):
            await service.initiate_payment(booking.id, RENTER, CARD)

    async def test_completed_booking_cannot_be_cancelled(self, service, listing, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc))
        await service.check_in_booking(confirmed.booking.id, OWNER)
        clock.set(datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc))
        await service.complete_booking(confirmed.booking.id, OWNER)

        with pytest.raises(InvalidTransition):
            await service.cancel_booking(confirmed.booking.id, OWNER)


class TestStayLifecycle:
    async def test_check_in_before_start_rejected(self, service, listing) -> None:
        confirmed = await _confirmed(service, listing)
        with pytest.raises(TransitionRejected) as exc_info:
            await service.check_in_booking(confirmed.booking.id, OWNER)
        assert exc_info.value.code == "check_in_not_reached"

    async def test_renter_cannot_check_in(self, service, listing, clock) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc))
        with pytest.raises(TransitionRejected):
            await service.check_in_booking(confirmed.booking.id, RENTER)

    async def test_complete_and_review(self, service, listing, clock, notifier) -> None:
        confirmed = await _confirmed(service, listing)
        clock.set(datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc))
        active = await service.check_in_booking(confirmed.booking.id, OWNER)
        assert active.status == BookingStatus.ACTIVE

        clock.set(datetime(2024, 6, 4, 10, 0, tzinfo=timezone.utc))
        with pytest.raises(TransitionRejected):
            await service.complete_booking(confirmed.booking.id, OWNER)

        clock.set(datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc))
        completed = await service.complete_booking(confirmed.booking.id, OWNER)
        assert completed.status == BookingStatus.COMPLETED
        assert notifier.events()[-1] == "booking_completed"

        reviewed = await service.record_review(confirmed.booking.id, RENTER)
        assert reviewed.review_left is True
        with pytest.raises(TransitionRejected) as exc_info:
            await service.record_review(confirmed.booking.id, RENTER)
        assert exc_info.value.code == "review_already_left"


# ---------------------------------------------------------------------------
# queries and notifications
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_quote_matches_created_booking(self, service, listing) -> None:
        quote = await service.quote(listing.id, JUNE_1, JUNE_4, 2)
        booking = await service.create_booking(RENTER, _request(listing))
        assert quote.total_cost == booking.total_cost

    async def test_check_availability(self, service, listing) -> None:
        assert await service.check_availability(listing.id, JUNE_1, JUNE_4) is True
        await service.create_booking(RENTER, _request(listing))
        assert await service.check_availability(listing.id, JUNE_1, JUNE_4) is False

    async def test_get_booking_hidden_from_outsiders(self, service, listing) -> None:
        booking = await service.create_booking(RENTER, _request(listing))
        assert (await service.get_booking(booking.id, OWNER)).id == booking.id
        assert (await service.get_booking(booking.id, OUTSIDER, is_admin=True)).id == booking.id
        with pytest.raises(NotFound):
            await service.get_booking(booking.id, OUTSIDER)

    async def test_list_and_stats(self, service, listing) -> None:
        await service.create_booking(RENTER, _request(listing))
        items, total = await service.list_bookings(BookingFilters(user_id=OWNER, role="owner"))
        assert total == 1
        assert items[0].owner_id == OWNER
        _, renter_total = await service.list_bookings(BookingFilters(user_id=RENTER, role="owner"))
        assert renter_total == 0

        stats = await service.get_booking_stats(OWNER)
        assert stats["pending_requests"] == 1

    async def test_failing_notifier_does_not_fail_operation(self, repo, availability, gateway, clock, listing) -> None:
        service = BookingService(
            repo, availability, gateway, RecordingNotifier(fail=True), clock=clock, fees=EXAMPLE_FEES
        )
        booking = await service.create_booking(RENTER, _request(listing))
        approved = await service.approve_booking(booking.id, OWNER)
        assert approved.status == BookingStatus.APPROVED
