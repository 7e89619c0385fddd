"""Bookings API router.

Every mutation goes through ``BookingService``; routers never change a
booking's status directly. Domain errors propagate to the handler in
``app.main``, which turns them into ``{"message", "code", "details"}``
responses.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query, status

from app.api.deps import get_booking_service, get_current_active_user, require_admin
from app.bookings.clock import utcnow
from app.bookings.errors import NotFound
from app.bookings.ports import BookingFilters, PaymentDetails
from app.bookings.state_machine import ActorRole, actor_role_for, allowed_events, due_event
from app.bookings.statuses import STATUS_META, BookingStatus, get_status_meta
from app.models.booking import Booking
from app.models.user import User
from app.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingReasonRequest,
    BookingResponse,
    BookingStatsResponse,
    CancellationResponse,
    PaymentRequest,
    PaymentResponse,
    StatusMetaResponse,
    SweepResponse,
)
from app.schemas.transaction import RefundResponse, TransactionDetailResponse, TransactionResponse
from app.services.booking_service import BookingService, CreateBookingRequest

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def booking_response(booking: Booking, viewer_id: uuid.UUID) -> BookingResponse:
    """Serialise a booking with status metadata and the viewer's next actions."""
    now = utcnow()
    meta = get_status_meta(booking.status)
    role = actor_role_for(booking, viewer_id)

    actions: list[str] = []
    if role is not None:
        actions = [event.value for event in allowed_events(booking, role, now)]
        if role is ActorRole.RENTER and booking.status == BookingStatus.COMPLETED and not booking.review_left:
            actions.append("review")

    due = due_event(booking, now)
    data = {column.key: getattr(booking, column.key) for column in Booking.__table__.columns}
    data.update(
        status_label=meta.label,
        status_color=meta.color,
        is_terminal=meta.terminal,
        viewer_role=role.value if role is not None else None,
        allowed_actions=actions,
        due_transition=due.value if due is not None else None,
    )
    return BookingResponse.model_validate(data)


# ---------------------------------------------------------------------------
# Collection endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a booking",
)
async def create_booking(
    body: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    """Create a booking request in ``pending_approval`` and hold the dates.

    The cost breakdown is computed and frozen here; later listing price
    changes never affect it.
    """
    booking = await service.create_booking(
        current_user.id,
        CreateBookingRequest(**body.model_dump()),
    )
    return booking_response(booking, current_user.id)


@router.get(
    "",
    response_model=BookingListResponse,
    summary="List the current user's bookings",
)
async def list_bookings(
    role: str = Query("all", pattern="^(all|renter|owner)$", description="Bookings I made, received, or both"),
    status_filter: BookingStatus | None = Query(None, alias="status", description="Filter by booking status"),
    listing_id: uuid.UUID | None = Query(None, description="Filter by listing"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(20, ge=1, le=100, description="Pagination limit"),
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingListResponse:
    filters = BookingFilters(
        user_id=current_user.id,
        role=role,
        status=status_filter.value if status_filter is not None else None,
        listing_id=listing_id,
        skip=skip,
        limit=limit,
    )
    items, total = await service.list_bookings(filters)
    return BookingListResponse(items=[booking_response(b, current_user.id) for b in items], total=total)


@router.get("/stats", response_model=BookingStatsResponse, summary="Booking dashboard numbers")
async def booking_stats(
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingStatsResponse:
    return BookingStatsResponse(**await service.get_booking_stats(current_user.id))


@router.get("/statuses", response_model=list[StatusMetaResponse], summary="Status catalogue")
async def list_statuses() -> list[StatusMetaResponse]:
    """Labels, colours and terminal flags for every booking status."""
    return [
        StatusMetaResponse(
            status=meta.status.value,
            label=meta.label,
            color=meta.color,
            terminal=meta.terminal,
            description=meta.description,
        )
        for meta in STATUS_META.values()
    ]


@router.post("/system/sweep", response_model=SweepResponse, summary="Apply due date-driven transitions")
async def run_sweep(
    limit: int = Query(500, ge=1, le=5000),
    service: BookingService = Depends(get_booking_service),
    _admin: User = Depends(require_admin),
) -> SweepResponse:
    """Expire stale requests and unpaid approvals, check in and complete stays.

    Intended for a scheduler (cron, Cloud Scheduler) using an admin token.
    """
    return SweepResponse(applied=await service.run_status_sweep(limit=limit))


# ---------------------------------------------------------------------------
# Single-booking endpoints
# ---------------------------------------------------------------------------


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get booking detail")
async def get_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    """Return a booking to its renter, its owner or an administrator; 404 otherwise."""
    booking = await service.get_booking(booking_id, current_user.id, is_admin=current_user.is_admin)
    return booking_response(booking, current_user.id)


@router.get(
    "/{booking_id}/transaction",
    response_model=TransactionDetailResponse,
    summary="Payment record of a booking",
)
async def get_booking_transaction(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> TransactionDetailResponse:
    transaction = await service.get_transaction(booking_id, current_user.id)
    if transaction is None:
        raise NotFound("This booking has not been paid", code="transaction_not_found")
    return TransactionDetailResponse.model_validate(transaction)


@router.post("/{booking_id}/approve", response_model=BookingResponse, summary="Approve a booking request")
async def approve_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    """Owner accepts the request; the renter then has the payment window to pay."""
    booking = await service.approve_booking(booking_id, current_user.id)
    return booking_response(booking, current_user.id)


@router.post("/{booking_id}/reject", response_model=BookingResponse, summary="Reject a booking request")
async def reject_booking(
    booking_id: uuid.UUID,
    body: BookingReasonRequest | None = None,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await service.reject_booking(booking_id, current_user.id, reason=body.reason if body else None)
    return booking_response(booking, current_user.id)


@router.post("/{booking_id}/pay", response_model=PaymentResponse, summary="Pay for an approved booking")
async def pay_booking(
    booking_id: uuid.UUID,
    body: PaymentRequest,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> PaymentResponse:
    """Capture the frozen total and confirm the booking.

    Safe to retry: repeating the request (same ``Idempotency-Key`` or same
    payment details) never charges twice.
    """
    details = PaymentDetails(
        method=body.payment_method,
        token=body.token,
        card_number=body.card_number,
        card_brand=body.card_brand,
        idempotency_key=body.idempotency_key or idempotency_key,
    )
    outcome = await service.initiate_payment(booking_id, current_user.id, details)
    return PaymentResponse(
        booking=booking_response(outcome.booking, current_user.id),
        transaction=TransactionResponse.model_validate(outcome.transaction),
        replayed=outcome.replayed,
    )


@router.post("/{booking_id}/cancel", response_model=CancellationResponse, summary="Cancel a booking")
async def cancel_booking(
    booking_id: uuid.UUID,
    body: BookingReasonRequest | None = None,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> CancellationResponse:
    """Cancel as renter or owner; paid bookings are refunded per the cancellation policy."""
    outcome = await service.cancel_booking(booking_id, current_user.id, reason=body.reason if body else None)
    decision = outcome.decision
    return CancellationResponse(
        booking=booking_response(outcome.booking, current_user.id),
        refund=RefundResponse.model_validate(outcome.refund) if outcome.refund is not None else None,
        refund_amount=decision.amount if decision else 0,
        refund_percent=decision.percent if decision else 0,
        policy_rule=decision.rule if decision else None,
        replayed=outcome.replayed,
    )


@router.post("/{booking_id}/check-in", response_model=BookingResponse, summary="Mark a stay as started")
async def check_in_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await service.check_in_booking(booking_id, current_user.id)
    return booking_response(booking, current_user.id)


@router.post("/{booking_id}/complete", response_model=BookingResponse, summary="Mark a stay as finished")
async def complete_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await service.complete_booking(booking_id, current_user.id)
    return booking_response(booking, current_user.id)


@router.post("/{booking_id}/review", response_model=BookingResponse, summary="Record that a review was left")
async def review_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await service.record_review(booking_id, current_user.id)
    return booking_response(booking, current_user.id)
