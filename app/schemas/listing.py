"""Pydantic v2 request/response schemas for listing endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ListingCreate(BaseModel):
    """Schema for creating a new listing."""

    title: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    location: str | None = Field(None, max_length=255)
    category: str = Field("other", max_length=50)
    nightly_rate: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    cleaning_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    max_guests: int = Field(1, ge=1)
    status: str = Field("active", pattern="^(active|inactive)$")


class ListingUpdate(BaseModel):
    """Schema for partially updating a listing. All fields optional.

    Price changes never affect existing bookings, whose totals are frozen.
    """

    title: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    location: str | None = Field(None, max_length=255)
    category: str | None = Field(None, max_length=50)
    nightly_rate: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    cleaning_fee: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    max_guests: int | None = Field(None, ge=1)
    status: str | None = Field(None, pattern="^(active|inactive)$")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ListingResponse(BaseModel):
    """Public listing information returned from the API."""

    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str | None = None
    location: str | None = None
    category: str
    nightly_rate: Decimal
    cleaning_fee: Decimal
    max_guests: int
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ListingListResponse(BaseModel):
    """Paginated list of listings."""

    items: list[ListingResponse]
    total: int


class AvailabilityResponse(BaseModel):
    listing_id: uuid.UUID
    start_date: date
    end_date: date
    available: bool


class BlockedRange(BaseModel):
    start_date: date
    end_date: date


class CalendarResponse(BaseModel):
    """Held date ranges of a listing within a window."""

    listing_id: uuid.UUID
    start_date: date
    end_date: date
    blocked: list[BlockedRange]
