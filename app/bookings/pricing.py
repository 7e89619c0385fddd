"""Cost calculator: the frozen price snapshot of a booking.

Pure and deterministic: the same inputs always give the same breakdown, so a
quote shown to the renter and the total captured at payment agree to the cent.
All money is ``Decimal`` rounded half-up to two places.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

from app.bookings.errors import InvalidDateRange, InvalidGuestCount, InvalidNightlyRate
from app.config import settings

CENT = Decimal("0.01")
ZERO = Decimal("0")

_SECONDS_PER_DAY = 24 * 60 * 60


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to currency minor units (cents)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeSchedule:
    """Fees applied on top of the nightly base price."""

    service_fee_rate: Decimal
    tax_rate: Decimal
    cleaning_fee: Decimal | None = None

    @classmethod
    def from_settings(cls, cleaning_fee: Decimal | None = None) -> "FeeSchedule":
        return cls(
            service_fee_rate=settings.service_fee_rate,
            tax_rate=settings.tax_rate,
            cleaning_fee=cleaning_fee,
        )


@dataclass(frozen=True)
class CostBreakdown:
    nightly_rate: Decimal
    nights: int
    base_price: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    tax_amount: Decimal
    total_cost: Decimal

    def as_dict(self) -> dict[str, Decimal | int]:
        return {
            "nightly_rate": self.nightly_rate,
            "nights": self.nights,
            "base_price": self.base_price,
            "cleaning_fee": self.cleaning_fee,
            "service_fee": self.service_fee,
            "tax_amount": self.tax_amount,
            "total_cost": self.total_cost,
        }


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def count_nights(start: date | datetime, end: date | datetime) -> int:
    """Number of billable nights; a partial day counts as a full night."""
    seconds = (_as_datetime(end) - _as_datetime(start)).total_seconds()
    return math.ceil(seconds / _SECONDS_PER_DAY)


def compute_cost(
    nightly_rate: Decimal | int | str,
    start_date: date | datetime,
    end_date: date | datetime,
    guest_count: int,
    fee_schedule: FeeSchedule,
) -> CostBreakdown:
    """Compute the full price breakdown for a stay.

    Raises:
        InvalidNightlyRate: ``nightly_rate`` is not positive.
        InvalidDateRange: ``end_date`` is not strictly after ``start_date``.
        InvalidGuestCount: ``guest_count`` is below one.
    """
    rate = to_money(nightly_rate)
    if rate <= ZERO:
        raise InvalidNightlyRate("Nightly rate must be greater than zero")
    if _as_datetime(end_date) <= _as_datetime(start_date):
        raise InvalidDateRange(
            "End date must be after start date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    if guest_count < 1:
        raise InvalidGuestCount("At least one guest is required", details={"guest_count": guest_count})

    nights = count_nights(start_date, end_date)
    base_price = to_money(rate * nights)
    cleaning_fee = to_money(fee_schedule.cleaning_fee) if fee_schedule.cleaning_fee else to_money(ZERO)
    # Service fee is charged on the base price only, tax on everything before it.
    service_fee = to_money(base_price * fee_schedule.service_fee_rate)
    tax_amount = to_money((base_price + cleaning_fee + service_fee) * fee_schedule.tax_rate)
    total_cost = to_money(base_price + cleaning_fee + service_fee + tax_amount)

    return CostBreakdown(
        nightly_rate=rate,
        nights=nights,
        base_price=base_price,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        tax_amount=tax_amount,
        total_cost=total_cost,
    )
