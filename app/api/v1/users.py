"""Marketplace profiles: edit your own, view anyone's public profile."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db
from app.bookings.statuses import BookingStatus
from app.models.booking import Booking
from app.models.listing import Listing
from app.models.user import User
from app.schemas.auth import ProfileUpdate, PublicProfileResponse, UserResponse

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.patch("/me", response_model=UserResponse, summary="Update your profile")
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> UserResponse:
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    await db.flush()
    await db.refresh(current_user)
    return UserResponse.model_validate(current_user)


@router.get("/{user_id}", response_model=PublicProfileResponse, summary="Public profile")
async def get_public_profile(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> PublicProfileResponse:
    """Name, bio and track record of another user. Deactivated accounts are hidden."""
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    active_listings = await db.scalar(
        select(func.count()).select_from(Listing).where(Listing.owner_id == user_id, Listing.status == "active")
    )
    completed_stays = await db.scalar(
        select(func.count())
        .select_from(Booking)
        .where(
            or_(Booking.owner_id == user_id, Booking.renter_id == user_id),
            Booking.status == BookingStatus.COMPLETED.value,
        )
    )
    return PublicProfileResponse(
        id=user.id,
        name=user.name,
        bio=user.bio,
        location=user.location,
        avatar_url=user.avatar_url,
        member_since=user.created_at,
        active_listings=active_listings or 0,
        completed_stays=completed_stays or 0,
    )
