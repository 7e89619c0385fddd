"""Payment gateway selection."""

import logging
from functools import lru_cache

from app.bookings.ports import PaymentGateway
from app.config import settings
from app.payments.mock_gateway import MockPaymentGateway
from app.payments.stripe_gateway import StripePaymentGateway

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """Return the process-wide gateway configured by ``PAYMENT_GATEWAY``.

    Cached so the mock gateway keeps its idempotency ledger across requests.
    """
    if settings.payment_gateway == "stripe":
        logger.info("Using Stripe payment gateway")
        return StripePaymentGateway()
    logger.info("Using mock payment gateway")
    return MockPaymentGateway()
