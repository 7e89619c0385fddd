"""Listings API routes: owner-managed CRUD plus public availability and quotes."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_current_active_user, get_db
from app.bookings.errors import InvalidDateRange
from app.config import settings
from app.models.listing import Listing
from app.models.user import User
from app.repositories.availability import SqlAvailabilityIndex
from app.schemas.booking import CostBreakdownResponse
from app.schemas.listing import (
    AvailabilityResponse,
    BlockedRange,
    CalendarResponse,
    ListingCreate,
    ListingListResponse,
    ListingResponse,
    ListingUpdate,
)
from app.services.booking_service import BookingService

router = APIRouter(prefix="/api/v1/listings", tags=["listings"])


async def _get_listing(db: AsyncSession, listing_id: uuid.UUID) -> Listing:
    result = await db.execute(select(Listing).where(Listing.id == listing_id))
    listing = result.scalar_one_or_none()
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found",
        )
    return listing


def _check_window(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise InvalidDateRange(
            "end_date must be after start_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


@router.post(
    "",
    response_model=ListingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new listing",
)
async def create_listing(
    body: ListingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ListingResponse:
    """Create a listing owned by the authenticated user."""
    listing = Listing(owner_id=current_user.id, **body.model_dump())
    db.add(listing)
    await db.flush()
    await db.refresh(listing)
    return ListingResponse.model_validate(listing)


@router.get(
    "",
    response_model=ListingListResponse,
    summary="Browse listings",
)
async def list_listings(
    mine: bool = Query(False, description="Only listings owned by the current user"),
    category: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ListingListResponse:
    """Active listings for renters, or every listing the caller owns with ``mine=true``."""
    filters = [Listing.owner_id == current_user.id] if mine else [Listing.status == "active"]
    if category is not None:
        filters.append(Listing.category == category)

    total = (await db.execute(select(func.count()).select_from(Listing).where(*filters))).scalar_one()
    result = await db.execute(
        select(Listing).where(*filters).order_by(Listing.created_at.desc()).offset(skip).limit(limit)
    )
    return ListingListResponse(
        items=[ListingResponse.model_validate(item) for item in result.scalars().all()],
        total=total,
    )


@router.get(
    "/{listing_id}",
    response_model=ListingResponse,
    summary="Get a listing by ID",
)
async def get_listing(
    listing_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ListingResponse:
    """Inactive listings are only visible to their owner."""
    listing = await _get_listing(db, listing_id)
    if not listing.is_bookable and listing.owner_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found",
        )
    return ListingResponse.model_validate(listing)


@router.put(
    "/{listing_id}",
    response_model=ListingResponse,
    summary="Update a listing",
)
async def update_listing(
    listing_id: uuid.UUID,
    body: ListingUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ListingResponse:
    """Partially update a listing. Existing bookings keep their frozen prices."""
    listing = await _get_listing(db, listing_id)
    if listing.owner_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found",
        )

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(listing, field, value)

    db.add(listing)
    await db.flush()
    await db.refresh(listing)
    return ListingResponse.model_validate(listing)


@router.get(
    "/{listing_id}/availability",
    response_model=AvailabilityResponse,
    summary="Check whether dates are free",
)
async def check_availability(
    listing_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: BookingService = Depends(get_booking_service),
    _user: User = Depends(get_current_active_user),
) -> AvailabilityResponse:
    available = await service.check_availability(listing_id, start_date, end_date)
    return AvailabilityResponse(listing_id=listing_id, start_date=start_date, end_date=end_date, available=available)


@router.get(
    "/{listing_id}/calendar",
    response_model=CalendarResponse,
    summary="Held date ranges in a window",
)
async def listing_calendar(
    listing_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> CalendarResponse:
    _check_window(start_date, end_date)
    await _get_listing(db, listing_id)
    ranges = await SqlAvailabilityIndex(db).blocked_ranges(listing_id, start_date, end_date)
    return CalendarResponse(
        listing_id=listing_id,
        start_date=start_date,
        end_date=end_date,
        blocked=[BlockedRange(start_date=start, end_date=end) for start, end in ranges],
    )


@router.get(
    "/{listing_id}/quote",
    response_model=CostBreakdownResponse,
    summary="Price a stay",
)
async def quote_listing(
    listing_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    guest_count: int = Query(1, ge=1),
    service: BookingService = Depends(get_booking_service),
    _user: User = Depends(get_current_active_user),
) -> CostBreakdownResponse:
    """The same breakdown a booking for these dates would freeze at creation."""
    breakdown = await service.quote(listing_id, start_date, end_date, guest_count)
    return CostBreakdownResponse(**breakdown.as_dict(), currency=settings.currency)
