class BookingError(Exception):
    """Base class for errors raised by the booking engine."""


class ValidationError(BookingError):
    """The request is malformed; nothing was written."""


class NotFoundError(BookingError):
    pass


class ConflictError(BookingError):
    """The room type is already taken for part of the requested range."""


class IllegalTransitionError(BookingError):
    def __init__(self, booking_id: str, field: str, current, requested):
        self.booking_id = booking_id
        self.field = field
        self.current = getattr(current, "value", current)
        self.requested = getattr(requested, "value", requested)
        super().__init__(
            f"Booking {booking_id}: {field} cannot change from '{self.current}' to '{self.requested}'"
        )


class ConfigurationFallbackWarning(UserWarning):
    """A stored setting was missing or malformed and a default was used instead."""
