"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.schemas.transaction import RefundResponse, TransactionResponse

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for requesting a booking of a listing."""

    listing_id: uuid.UUID
    start_date: date
    end_date: date
    guest_count: int = Field(1, ge=1)
    special_requests: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_dates(self) -> "BookingCreate":
        """Validate that end_date is strictly after start_date."""
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class BookingReasonRequest(BaseModel):
    """Optional free-text reason for a rejection or cancellation."""

    reason: str | None = Field(None, max_length=500)


class PaymentRequest(BaseModel):
    """Payment details for an approved booking.

    ``token`` is a gateway payment-method token (Stripe); ``card_number`` is
    only accepted by the mock gateway used in development.
    """

    payment_method: str = Field("card", pattern="^(card|paypal|bank_transfer)$")
    token: str | None = Field(None, max_length=255)
    card_number: str | None = Field(None, min_length=13, max_length=23)
    card_brand: str | None = Field(None, max_length=50)
    idempotency_key: str | None = Field(None, max_length=255)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CostBreakdownResponse(BaseModel):
    """Itemised price of a stay."""

    nightly_rate: Decimal
    nights: int
    base_price: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    tax_amount: Decimal
    total_cost: Decimal
    currency: str

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    """Booking as seen by one of its parties."""

    id: uuid.UUID
    reference_number: str
    listing_id: uuid.UUID
    owner_id: uuid.UUID
    renter_id: uuid.UUID
    start_date: date
    end_date: date
    guest_count: int
    special_requests: str | None = None

    currency: str
    nightly_rate: Decimal
    nights: int
    base_price: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    tax_amount: Decimal
    total_cost: Decimal

    status: str
    status_label: str
    status_color: str
    is_terminal: bool
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    review_left: bool
    version: int

    created_at: datetime
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    payment_due_at: datetime | None = None
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    viewer_role: str | None = None
    allowed_actions: list[str] = []
    due_transition: str | None = None


class BookingListResponse(BaseModel):
    """Paginated list of bookings."""

    items: list[BookingResponse]
    total: int


class PaymentResponse(BaseModel):
    """Result of paying for a booking."""

    booking: BookingResponse
    transaction: TransactionResponse
    replayed: bool = False


class CancellationResponse(BaseModel):
    """Result of cancelling a booking, including the refund decision."""

    booking: BookingResponse
    refund: RefundResponse | None = None
    refund_amount: Decimal = Decimal("0")
    refund_percent: Decimal = Decimal("0")
    policy_rule: str | None = None
    replayed: bool = False


class BookingStatsResponse(BaseModel):
    """Headline numbers for the booking dashboard."""

    total_bookings: int
    completed_bookings: int
    active_bookings: int
    pending_requests: int
    total_revenue: Decimal
    total_spent: Decimal


class StatusMetaResponse(BaseModel):
    status: str
    label: str
    color: str
    terminal: bool
    description: str


class SweepResponse(BaseModel):
    """Transitions applied by one status sweep, keyed by event."""

    applied: dict[str, int]
