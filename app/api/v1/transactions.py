"""Payment history for payers and recipients."""

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db
from app.models.transaction import Refund, Transaction
from app.models.user import User
from app.payments.fees import calculate_fees
from app.schemas.transaction import (
    FeeBreakdownResponse,
    TransactionDetailResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionStatsResponse,
)

router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


@router.get(
    "",
    response_model=TransactionListResponse,
    summary="List payments made or received",
)
async def list_transactions(
    direction: str = Query("all", pattern="^(all|paid|received)$"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> TransactionListResponse:
    if direction == "paid":
        party = Transaction.payer_id == current_user.id
    elif direction == "received":
        party = Transaction.recipient_id == current_user.id
    else:
        party = or_(Transaction.payer_id == current_user.id, Transaction.recipient_id == current_user.id)

    total = (await db.execute(select(func.count()).select_from(Transaction).where(party))).scalar_one()
    result = await db.execute(
        select(Transaction).where(party).order_by(Transaction.created_at.desc()).offset(skip).limit(limit)
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in result.scalars().all()],
        total=total,
    )


@router.get(
    "/stats",
    response_model=TransactionStatsResponse,
    summary="Payment totals for the current user",
)
async def transaction_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> TransactionStatsResponse:
    as_payer = Transaction.payer_id == current_user.id
    as_recipient = Transaction.recipient_id == current_user.id
    settled = Transaction.status != "failed"
    query = select(
        func.count(Transaction.id),
        func.sum(case((as_payer & settled, Transaction.amount), else_=0)),
        func.sum(case((as_recipient & settled, Transaction.net_amount), else_=0)),
        func.sum(case((Transaction.status == "completed", 1), else_=0)),
    ).where(or_(as_payer, as_recipient))
    total, paid, earned, completed = (await db.execute(query)).one()

    refunded = await db.scalar(
        select(func.sum(Refund.amount))
        .join(Transaction, Refund.transaction_id == Transaction.id)
        .where(or_(as_payer, as_recipient))
    )
    return TransactionStatsResponse(
        total_transactions=total or 0,
        total_paid=paid or 0,
        total_earned=earned or 0,
        total_refunded=refunded or 0,
        completed_transactions=completed or 0,
    )


@router.get(
    "/calculate-fees",
    response_model=FeeBreakdownResponse,
    summary="Preview the platform and processing fees on an amount",
)
async def preview_fees(
    amount: Decimal = Query(..., gt=0, max_digits=12, decimal_places=2),
    current_user: User = Depends(get_current_active_user),
) -> FeeBreakdownResponse:
    fees = calculate_fees(amount)
    return FeeBreakdownResponse(
        gross_amount=fees.gross_amount,
        platform_fee=fees.platform_fee,
        processing_fee=fees.processing_fee,
        net_amount=fees.net_amount,
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionDetailResponse,
    summary="Get a payment with its refunds",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> TransactionDetailResponse:
    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id).execution_options(populate_existing=True)
    )
    transaction = result.scalar_one_or_none()
    if transaction is None or current_user.id not in (transaction.payer_id, transaction.recipient_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found",
        )
    return TransactionDetailResponse.model_validate(transaction)
