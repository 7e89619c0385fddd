"""Stripe payment gateway: PaymentIntents with idempotency keys."""

import logging
from decimal import Decimal

import stripe
from stripe import StripeClient

from app.bookings.errors import PaymentError
from app.bookings.ports import CaptureResult, PaymentDetails
from app.config import settings

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous)."""
    client = get_stripe_client()
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)


def to_minor_units(amount: Decimal) -> int:
    """Convert a 2-dp Decimal amount to the integer cents Stripe expects."""
    return int((Decimal(amount) * 100).to_integral_value())


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class StripePaymentGateway:
    """``PaymentGateway`` that confirms a PaymentIntent in one request.

    An intent still ``processing`` is returned as a pending capture; the
    ``payment_intent.*`` webhooks settle it later.

    The booking's idempotency key is forwarded to Stripe, so a retry after a
    timeout returns the original PaymentIntent rather than charging twice.
    """

    def __init__(self, client: StripeClient | None = None) -> None:
        self.client = client or get_stripe_client()

    async def capture(
        self,
        amount: Decimal,
        currency: str,
        details: PaymentDetails,
        *,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> CaptureResult:
        if details.method != "card" or not details.token:
            raise PaymentError(
                "Stripe payments require a card payment method token",
                code="invalid_payment_method",
                retryable=False,
            )

        logger.info("Creating Stripe PaymentIntent for %s %s (key %s)", amount, currency, idempotency_key)
        try:
            intent = await self.client.v1.payment_intents.create_async(
                params={
                    "amount": to_minor_units(amount),
                    "currency": currency.lower(),
                    "payment_method": details.token,
                    "confirm": True,
                    "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
                    "metadata": metadata or {},
                },
                options={"idempotency_key": idempotency_key},
            )
        except stripe.CardError as exc:
            logger.info("Stripe declined payment (%s): %s", exc.code, exc.user_message)
            raise PaymentError(exc.user_message or "Card was declined", code=exc.code or "card_declined") from exc
        except stripe.APIConnectionError as exc:
            logger.warning("Stripe connection error: %s", exc)
            raise PaymentError("Could not reach the payment processor", code="network_error") from exc
        except stripe.StripeError as exc:
            logger.error("Stripe error during capture: %s", exc)
            raise PaymentError("Payment could not be processed", code="payment_failed") from exc

        if intent.status not in ("succeeded", "processing"):
            logger.info("PaymentIntent %s ended in status %s", intent.id, intent.status)
            raise PaymentError(
                "Payment needs additional confirmation",
                code="payment_requires_action",
            )

        card = _card_details(intent)
        return CaptureResult(
            reference=intent.id,
            amount=from_minor_units(intent.amount),
            currency=intent.currency.upper(),
            card_last_four=card.get("last4"),
            card_brand=card.get("brand"),
            status="completed" if intent.status == "succeeded" else "pending",
            raw={"payment_intent": intent.id, "latest_charge": getattr(intent, "latest_charge", None)},
        )

    async def refund(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        *,
        idempotency_key: str,
    ) -> str:
        logger.info("Refunding %s %s on PaymentIntent %s", amount, currency, reference)
        try:
            refund = await self.client.v1.refunds.create_async(
                params={"payment_intent": reference, "amount": to_minor_units(amount)},
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as exc:
            logger.error("Stripe refund failed for %s: %s", reference, exc)
            raise PaymentError("Refund could not be processed", code="refund_failed") from exc
        return refund.id


def _card_details(intent) -> dict:
    """Pull brand/last4 from the expanded charge when Stripe returned it."""
    charge = getattr(intent, "latest_charge", None)
    details = getattr(charge, "payment_method_details", None) if charge and not isinstance(charge, str) else None
    card = getattr(details, "card", None) if details else None
    if card is None:
        return {}
    return {"last4": getattr(card, "last4", None), "brand": getattr(card, "brand", None)}
