"""
Typed failures of the booking engine.

Every error carries a stable code and the HTTP status the API boundary maps
it to, so a single exception handler can render all of them.
"""

from typing import Any, Optional

from ..core.responses import ErrorCodes


class BookingError(Exception):
    """Base class for all engine failures."""
    code: str = ErrorCodes.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class SlotUnavailable(BookingError):
    """Requested interval conflicts with a booking or block, or is outside hours."""
    code = ErrorCodes.SLOT_UNAVAILABLE
    status_code = 409


class InvalidDuration(BookingError):
    code = ErrorCodes.INVALID_DURATION
    status_code = 422


class AppointmentNotFound(BookingError):
    code = ErrorCodes.APPOINTMENT_NOT_FOUND
    status_code = 404


class NoChangeRequested(BookingError):
    code = ErrorCodes.NO_CHANGE_REQUESTED
    status_code = 400


class TransientContention(BookingError):
    """Serialization key could not be acquired in time. Retry with backoff."""
    code = ErrorCodes.TRANSIENT_CONTENTION
    status_code = 503
    retry_after_seconds = 1


class ServiceNotFound(BookingError):
    code = ErrorCodes.SERVICE_NOT_FOUND
    status_code = 404


class StylistNotFound(BookingError):
    code = ErrorCodes.STYLIST_NOT_FOUND
    status_code = 404


class InvalidRequest(BookingError):
    code = ErrorCodes.VALIDATION_ERROR
    status_code = 400


class InvalidStatusTransition(BookingError):
    code = ErrorCodes.STATE_CONFLICT
    status_code = 409
