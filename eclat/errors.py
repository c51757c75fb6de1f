"""Error types raised by the booking core."""
from __future__ import annotations


class BookingError(Exception):
    """Base class for booking-domain failures."""

    error_code = "booking_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error_code, "message": self.message}


class InvalidDuration(BookingError):
    """Slot duration must be a positive number of minutes."""

    error_code = "invalid_duration"


class InvalidSchedule(BookingError):
    """Schedule entry has non-chronological or malformed bounds."""

    error_code = "invalid_schedule"


class InconsistentState(BookingError):
    """Stored rating aggregate does not match the requested change."""

    error_code = "inconsistent_state"


class SlotConflict(BookingError):
    """Requested slot is already held by another appointment."""

    error_code = "slot_conflict"
