"""Booking notifications: templated messages to renters and owners."""

import logging
import uuid
from collections import deque
from typing import Any

logger = logging.getLogger(__name__)

TEMPLATES = {
    "booking_requested": {
        "subject": "New booking request {reference_number}",
        "body": (
            "You have a new booking request for {listing_title}.\n\n"
            "Reference: {reference_number}\n"
            "Dates: {start_date} to {end_date}\n"
            "Guests: {guest_count}\n"
            "Total: {total_cost} {currency}\n\n"
            "Please approve or reject the request."
        ),
    },
    "booking_approved": {
        "subject": "Booking request approved - {listing_title}",
        "body": (
            "Good news! Your request {reference_number} for {listing_title} "
            "({start_date} to {end_date}) was approved.\n\n"
            "Complete the payment of {total_cost} {currency} before {payment_due_at} "
            "to confirm your booking."
        ),
    },
    "booking_rejected": {
        "subject": "Booking request update - {listing_title}",
        "body": (
            "Unfortunately your request {reference_number} for {listing_title} "
            "({start_date} to {end_date}) was declined.\n\n"
            "Reason: {reason}"
        ),
    },
    "booking_confirmed": {
        "subject": "Booking confirmed - {listing_title}",
        "body": (
            "Booking {reference_number} for {listing_title} is confirmed.\n\n"
            "Dates: {start_date} to {end_date}\n"
            "Guests: {guest_count}\n"
            "Amount paid: {total_cost} {currency}\n"
            "Payment reference: {transaction_reference}"
        ),
    },
    "booking_cancelled": {
        "subject": "Booking cancelled - {listing_title}",
        "body": (
            "Booking {reference_number} for {listing_title} ({start_date} to {end_date}) "
            "was cancelled by the {cancelled_by}.\n\n"
            "Reason: {reason}\n"
            "Refund: {refund_amount} {currency}"
        ),
    },
    "booking_completed": {
        "subject": "How was your stay? - {listing_title}",
        "body": (
            "Your booking {reference_number} for {listing_title} is complete.\n\n"
            "You can now leave a review for the owner."
        ),
    },
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return "n/a"


def render(event: str, payload: dict[str, Any]) -> dict[str, str]:
    """Render the subject and body for ``event``. Raises ``KeyError`` if unknown."""
    template = TEMPLATES[event]
    values = _Defaults({k: v for k, v in payload.items() if v is not None})
    return {
        "subject": template["subject"].format_map(values),
        "body": template["body"].format_map(values),
    }


class LoggingNotifier:
    """``Notifier`` that renders the message and writes it to the log.

    Stands in for an email/push provider; the rendered messages are kept in
    ``sent`` (bounded to the last ``history`` messages) for inspection.
    """

    def __init__(self, history: int = 100) -> None:
        self.sent: deque[dict[str, Any]] = deque(maxlen=history)

    async def notify(self, user_id: uuid.UUID, event: str, payload: dict[str, Any]) -> None:
        message = render(event, payload)
        self.sent.append({"user_id": user_id, "event": event, **message})
        logger.info("Notification %s to user %s: %s", event, user_id, message["subject"])
