"""Tests for the cancellation refund policy."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.bookings.policy import CancellationPolicy, compute_refund, days_until_start
from app.bookings.state_machine import ActorRole
from app.models.booking import Booking

POLICY = CancellationPolicy()
PAID = Decimal("410.40")


def _booking(confirmed_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)) -> Booking:
    return Booking(
        id=uuid.uuid4(),
        owner_id=uuid.uuid4(),
        renter_id=uuid.uuid4(),
        status="confirmed",
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 4),
        total_cost=PAID,
        confirmed_at=confirmed_at,
    )


def _at(day: int, month: int = 5, hour: int = 12) -> datetime:
    return datetime(2024, month, day, hour, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("now", "rule", "amount"),
    [
        (_at(2), "free_window", PAID),
        (_at(10), "early", Decimal("369.36")),
        (_at(30), "late", Decimal("205.20")),
        (_at(31), "last_minute", Decimal("0.00")),
    ],
)
def test_renter_tiers(now, rule, amount):
    decision = compute_refund(_booking(), PAID, now, ActorRole.RENTER, POLICY)
    assert decision.rule == rule
    assert decision.amount == amount


def test_owner_cancellation_is_full_refund():
    decision = compute_refund(_booking(), PAID, _at(31), ActorRole.OWNER, POLICY)
    assert decision.rule == "host_cancelled"
    assert decision.amount == PAID
    assert decision.percent == Decimal("100.00")


def test_nothing_paid():
    decision = compute_refund(_booking(), None, _at(10), ActorRole.RENTER, POLICY)
    assert decision.rule == "no_payment"
    assert decision.is_refund is False


def test_refund_never_exceeds_payment():
    policy = CancellationPolicy(early_refund=Decimal("1.50"))
    decision = compute_refund(_booking(), PAID, _at(10), ActorRole.RENTER, policy)
    assert decision.amount == PAID


def test_days_until_start_rounds_up():
    assert days_until_start(_booking(), _at(30)) == 2
    assert days_until_start(_booking(), _at(31, hour=0)) == 1
