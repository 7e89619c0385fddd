"""Stripe webhook event handlers: settle payments that were still processing at checkout."""

import logging

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service
from app.bookings.clock import utcnow
from app.bookings.errors import InvalidTransition
from app.models.transaction import Transaction

logger = logging.getLogger(__name__)


async def _pending_transaction(db: AsyncSession, intent_id: str) -> Transaction | None:
    """The transaction recorded for ``intent_id`` while it is still pending."""
    result = await db.execute(select(Transaction).where(Transaction.gateway_reference == intent_id))
    transaction = result.scalar_one_or_none()
    if transaction is None:
        logger.warning("No transaction found for PaymentIntent %s", intent_id)
        return None
    if transaction.status != "pending":
        logger.info(
            "Transaction %s for PaymentIntent %s is already %s, skipping",
            transaction.reference_number,
            intent_id,
            transaction.status,
        )
        return None
    return transaction


async def handle_payment_intent_succeeded(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.succeeded: mark the pending transaction completed."""
    intent = event.data.object
    transaction = await _pending_transaction(db, intent.id)
    if transaction is None:
        return

    transaction.status = "completed"
    transaction.completed_at = utcnow()
    await db.flush()
    logger.info("Transaction %s settled by PaymentIntent %s", transaction.reference_number, intent.id)


async def handle_payment_intent_failed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.payment_failed: fail the transaction and cancel its booking.

    The cancellation runs as the system. A failed transaction refunds nothing.
    """
    intent = event.data.object
    transaction = await _pending_transaction(db, intent.id)
    if transaction is None:
        return

    transaction.status = "failed"
    await db.flush()
    logger.warning("Transaction %s failed (PaymentIntent %s)", transaction.reference_number, intent.id)

    error = getattr(intent, "last_payment_error", None)
    reason = getattr(error, "message", None) or "Payment failed"
    service = await get_booking_service(db)
    try:
        await service.cancel_booking(transaction.booking_id, None, reason=reason)
    except InvalidTransition as exc:
        logger.warning("Booking %s not cancelled after failed payment: %s", transaction.booking_id, exc.message)
