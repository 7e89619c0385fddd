"""Pydantic v2 response schemas for payment records."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class RefundResponse(BaseModel):
    id: uuid.UUID
    transaction_id: uuid.UUID
    booking_id: uuid.UUID
    amount: Decimal
    refund_percent: Decimal
    policy_rule: str
    reason: str | None = None
    gateway_reference: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TransactionResponse(BaseModel):
    """A captured payment. Fee columns are only meaningful to the recipient."""

    id: uuid.UUID
    booking_id: uuid.UUID
    payer_id: uuid.UUID
    recipient_id: uuid.UUID
    reference_number: str
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    gateway_reference: str
    card_last_four: str | None = None
    card_brand: str | None = None
    platform_fee: Decimal
    processing_fee: Decimal
    net_amount: Decimal
    created_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TransactionDetailResponse(TransactionResponse):
    """Transaction with the refunds issued against it."""

    refunds: list[RefundResponse] = []


class TransactionListResponse(BaseModel):
    """Paginated list of transactions."""

    items: list[TransactionResponse]
    total: int


class TransactionStatsResponse(BaseModel):
    """Payment totals for the current user. Failed payments are not counted as money moved."""

    total_transactions: int
    total_paid: Decimal
    total_earned: Decimal
    total_refunded: Decimal
    completed_transactions: int


class FeeBreakdownResponse(BaseModel):
    gross_amount: Decimal
    platform_fee: Decimal
    processing_fee: Decimal
    net_amount: Decimal
