"""
Custom exception classes for better error handling.
Provides specific error types instead of generic exceptions.

Admission failures derive from BookingError and carry a machine-readable
``kind`` plus the HTTP status the API answers with.
"""


class BookingError(Exception):
    """Base exception for rejected booking operations."""

    kind = "booking_error"
    http_status = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__


class NotFoundError(BookingError):
    """Entity not found."""

    kind = "not_found"
    http_status = 404


class ResourceNotFoundError(NotFoundError):
    """Resource not found."""

    pass


class BookingNotFoundError(NotFoundError):
    """Booking not found."""

    pass


class InvalidTimeRangeError(BookingError):
    """Start time is in the past or end time is not after start time."""

    kind = "invalid_time_range"


class DurationExceededError(BookingError):
    """Booking duration exceeds the resource maximum."""

    kind = "duration_exceeded"


class SlotConflictError(BookingError):
    """This time slot is already booked."""

    kind = "slot_conflict"
    http_status = 409


class ForbiddenError(BookingError):
    """Not authorized to perform this operation."""

    kind = "forbidden"
    http_status = 403


class InvalidStateError(BookingError):
    """Operation not allowed in the booking's current state."""

    kind = "invalid_state"
    http_status = 409


class InvalidInputError(BookingError):
    """Invalid input."""

    kind = "invalid_input"


class UnauthorizedError(BookingError):
    """Requester identity is missing."""

    kind = "unauthorized"
    http_status = 401


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class OverlapViolationError(DatabaseError):
    """Raised when the store rejects a write that would double-book a resource."""

    pass


class StaleWriteError(DatabaseError):
    """Raised when a booking changed between being read and being written."""

    pass
