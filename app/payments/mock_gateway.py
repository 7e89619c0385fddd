"""In-process payment gateway for development and demos.

Behaves like a card processor that honours idempotency keys: replaying a key
returns the original capture. A handful of well-known test card numbers
trigger failures so the client can exercise every error path.
"""

import asyncio
import logging
import uuid
from decimal import Decimal

from app.bookings.errors import PaymentError
from app.bookings.ports import CaptureResult, PaymentDetails
from app.config import settings

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"card", "paypal", "bank_transfer"})

# card number -> (error code, message, retryable)
TEST_CARD_FAILURES: dict[str, tuple[str, str, bool]] = {
    "4000000000000002": ("card_declined", "Card was declined", True),
    "4000000000009995": ("insufficient_funds", "Insufficient funds", True),
    "4000000000000069": ("expired_card", "Card has expired", True),
    "4000000000000119": ("network_error", "Network connection to the card processor failed", True),
}


class MockPaymentGateway:
    """``PaymentGateway`` that never leaves the process."""

    def __init__(self, delay_seconds: float | None = None) -> None:
        self.delay_seconds = settings.mock_payment_delay_seconds if delay_seconds is None else delay_seconds
        self._captures: dict[str, CaptureResult] = {}
        self._refunds: dict[str, str] = {}

    @property
    def capture_count(self) -> int:
        return len(self._captures)

    @property
    def refund_count(self) -> int:
        return len(self._refunds)

    async def capture(
        self,
        amount: Decimal,
        currency: str,
        details: PaymentDetails,
        *,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> CaptureResult:
        previous = self._captures.get(idempotency_key)
        if previous is not None:
            if previous.amount != amount:
                raise PaymentError(
                    "Idempotency key was already used for a different amount",
                    code="idempotency_mismatch",
                    retryable=False,
                )
            logger.info("Replaying mock capture %s for key %s", previous.reference, idempotency_key)
            return previous

        _validate_details(details)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        failure = TEST_CARD_FAILURES.get((details.card_number or "").replace(" ", ""))
        if failure is not None:
            code, message, retryable = failure
            logger.info("Mock capture failed with %s", code)
            raise PaymentError(message, code=code, retryable=retryable)

        result = CaptureResult(
            reference=f"MOCK_{uuid.uuid4().hex[:16]}",
            amount=amount,
            currency=currency,
            card_last_four=details.card_last_four,
            card_brand=details.card_brand or ("Visa" if details.method == "card" else None),
            raw={"metadata": metadata or {}},
        )
        self._captures[idempotency_key] = result
        logger.info("Mock captured %s %s as %s", amount, currency, result.reference)
        return result

    async def refund(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        *,
        idempotency_key: str,
    ) -> str:
        if idempotency_key in self._refunds:
            return self._refunds[idempotency_key]
        captured = next((c for c in self._captures.values() if c.reference == reference), None)
        if captured is not None and amount > captured.amount:
            raise PaymentError(
                "Refund amount cannot exceed the captured amount",
                code="refund_exceeds_capture",
                retryable=False,
            )
        refund_id = f"MOCK_RF_{uuid.uuid4().hex[:12]}"
        self._refunds[idempotency_key] = refund_id
        logger.info("Mock refunded %s %s of %s as %s", amount, currency, reference, refund_id)
        return refund_id


def _validate_details(details: PaymentDetails) -> None:
    if details.method not in SUPPORTED_METHODS:
        raise PaymentError(f"Unsupported payment method: {details.method}", code="invalid_payment_method", retryable=False)
    if details.method == "card":
        number = (details.card_number or "").replace(" ", "")
        if len(number) < 13 or not number.isdigit():
            raise PaymentError("Invalid card number", code="invalid_card_number", retryable=False)
