"""Booking engine error taxonomy.

Every error carries the HTTP status it maps to and the log level it is
reported at; the FastAPI exception handler in ``slotwise.main`` renders them
as ``{"success": false, "error": ...}``.
"""

import logging


class BookingError(Exception):
    status_code = 500
    log_level = logging.ERROR
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BookingError):
    status_code = 404
    log_level = logging.INFO
    default_message = "Not found"


class ConflictError(BookingError):
    """The requested interval is taken; clients should re-fetch availability."""

    status_code = 409
    log_level = logging.INFO
    default_message = "slot unavailable"


class InvalidStateTransition(ConflictError):
    default_message = "Appointment cannot change to the requested status"


class InvalidInput(BookingError):
    status_code = 400
    log_level = logging.INFO
    default_message = "Invalid input"


class InvalidSignature(BookingError):
    status_code = 400
    log_level = logging.ERROR
    default_message = "Invalid signature"


class GatewayError(BookingError):
    """Payment gateway unreachable or it rejected the request."""

    status_code = 502
    log_level = logging.WARNING
    default_message = "Payment gateway unavailable, please try again"


class InvalidTimeZone(BookingError):
    default_message = "Invalid time zone"


class InvalidTimeFormat(BookingError):
    default_message = "Invalid time format, expected HH:MM"


class InvalidSchedule(BookingError):
    """A stored staff schedule does not validate."""

    default_message = "Invalid staff schedule"
