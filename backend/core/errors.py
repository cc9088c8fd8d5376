"""Errors surfaced by the booking operations.

Routes translate each kind into its own HTTP status; the message is safe to
show to the caller, internal detail is only logged.
"""


class BookingError(Exception):
    status_code = 500
    default_message = "Booking request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UpstreamUnavailable(BookingError):
    """Calendar or ledger unreachable, or the calendar was never authorized."""

    status_code = 503
    default_message = "Calendar service is unavailable."


class NotFound(BookingError):
    status_code = 404
    default_message = "Event not found in calendar."


class Conflict(BookingError):
    status_code = 409
    default_message = "This slot is not available anymore."


class Unauthenticated(BookingError):
    status_code = 401
    default_message = "Not authenticated."
