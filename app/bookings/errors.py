"""Booking domain errors.

Every error carries a machine-readable ``code`` so clients can render an
actionable message ("dates no longer available" vs. "payment declined" vs.
"this booking was already processed"). Routers never catch these; the
handler registered in ``app.main`` converts them with ``to_http_exception``.
"""

from typing import Any

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for all booking-lifecycle errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "booking_error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationError(BookingError):
    """Malformed request; the client has to fix its input."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "validation_error"


class InvalidDateRange(ValidationError):
    default_code = "invalid_date_range"


class InvalidGuestCount(ValidationError):
    default_code = "invalid_guest_count"


class InvalidNightlyRate(ValidationError):
    default_code = "invalid_nightly_rate"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class AvailabilityConflict(BookingError):
    """The listing cannot take the requested dates; pick new ones."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "dates_unavailable"


class InvalidTransition(BookingError):
    """The event is not legal from the booking's current status."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_transition"

    def __init__(self, message: str, current_status: str, event: str, code: str | None = None) -> None:
        super().__init__(
            message,
            code=code,
            details={"current_status": current_status, "event": event},
        )
        self.current_status = current_status
        self.event = event


class TransitionRejected(BookingError):
    """A guard failed: wrong actor, capacity exceeded, window closed, ..."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "transition_rejected"


class PaymentError(BookingError):
    """Payment capture or refund failed. Never retried automatically."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_code = "payment_failed"

    def __init__(self, message: str, code: str | None = None, retryable: bool = True) -> None:
        super().__init__(message, code=code, details={"retryable": retryable})
        self.retryable = retryable


class VersionConflict(BookingError):
    """Another writer changed the booking since it was read; refetch and retry."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "version_conflict"
