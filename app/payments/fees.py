"""Marketplace fee split: what the platform keeps and what the owner receives."""

from dataclasses import dataclass
from decimal import Decimal

from app.bookings.pricing import to_money
from app.config import settings


@dataclass(frozen=True)
class FeeSplit:
    gross_amount: Decimal
    platform_fee: Decimal
    processing_fee: Decimal
    net_amount: Decimal


def calculate_fees(amount: Decimal) -> FeeSplit:
    """Split a captured amount into platform fee, processing fee and owner payout.

    Platform fee is ``platform_fee_rate`` of the gross; processing follows the
    card-network model of a percentage plus a fixed amount per charge.
    """
    gross = to_money(amount)
    platform_fee = to_money(gross * settings.platform_fee_rate)
    processing_fee = to_money(gross * settings.processing_fee_rate + settings.processing_fee_fixed)
    net_amount = to_money(max(gross - platform_fee - processing_fee, Decimal("0")))
    return FeeSplit(
        gross_amount=gross,
        platform_fee=platform_fee,
        processing_fee=processing_fee,
        net_amount=net_amount,
    )
