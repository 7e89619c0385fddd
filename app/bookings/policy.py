"""Cancellation refund policy.

Rules are evaluated top to bottom; the first match decides the refund:

1. nothing was paid: no refund;
2. the owner (or the system) cancelled: full refund;
3. cancelled within the free-cancellation window after confirmation: full refund;
4. more than ``early_days`` before check-in: ``early_refund`` share;
5. more than ``late_days`` before check-in: ``late_refund`` share;
6. otherwise: no refund.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from app.bookings.clock import as_utc, start_of_day
from app.bookings.pricing import ZERO, to_money
from app.bookings.state_machine import ActorRole, BookingLike
from app.config import settings

FULL = Decimal("1")


@dataclass(frozen=True)
class CancellationPolicy:
    free_cancellation_hours: int = 48
    early_days: int = 7
    early_refund: Decimal = Decimal("0.90")
    late_days: int = 1
    late_refund: Decimal = Decimal("0.50")

    @classmethod
    def from_settings(cls) -> "CancellationPolicy":
        return cls(
            free_cancellation_hours=settings.free_cancellation_hours,
            early_days=settings.early_cancellation_days,
            early_refund=settings.early_cancellation_refund,
            late_days=settings.late_cancellation_days,
            late_refund=settings.late_cancellation_refund,
        )


@dataclass(frozen=True)
class RefundDecision:
    amount: Decimal
    percent: Decimal  # 0-100
    rule: str

    @property
    def is_refund(self) -> bool:
        return self.amount > ZERO


def days_until_start(booking: BookingLike, now: datetime) -> int:
    """Whole days (rounded up) from ``now`` until check-in at midnight UTC."""
    seconds = (start_of_day(booking.start_date) - as_utc(now)).total_seconds()
    return math.ceil(seconds / 86400)


def compute_refund(
    booking: BookingLike,
    paid_amount: Decimal | None,
    now: datetime,
    cancelled_by: ActorRole,
    policy: CancellationPolicy,
) -> RefundDecision:
    """Decide how much of ``paid_amount`` goes back to the renter."""
    if not paid_amount:
        return RefundDecision(amount=to_money(ZERO), percent=ZERO, rule="no_payment")

    if cancelled_by in (ActorRole.OWNER, ActorRole.SYSTEM):
        return _share(paid_amount, FULL, "host_cancelled")

    confirmed_at = getattr(booking, "confirmed_at", None)
    if confirmed_at is not None and as_utc(now) - as_utc(confirmed_at) <= timedelta(
        hours=policy.free_cancellation_hours
    ):
        return _share(paid_amount, FULL, "free_window")

    days = days_until_start(booking, now)
    if days > policy.early_days:
        return _share(paid_amount, policy.early_refund, "early")
    if days > policy.late_days:
        return _share(paid_amount, policy.late_refund, "late")
    return RefundDecision(amount=to_money(ZERO), percent=ZERO, rule="last_minute")


def _share(paid_amount: Decimal, fraction: Decimal, rule: str) -> RefundDecision:
    amount = min(to_money(Decimal(paid_amount) * fraction), to_money(paid_amount))
    return RefundDecision(amount=amount, percent=(fraction * 100).quantize(Decimal("0.01")), rule=rule)
