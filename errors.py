"""
Errors raised by the booking ledger and the storage helpers.
The HTTP layer maps them to status codes.
"""


class LedgerError(Exception):
    """Base class for recoverable booking errors."""


class NotFound(LedgerError):
    """A class, booking or user does not exist."""


class CapacityExceeded(LedgerError):
    """The class was full at booking time."""


class AlreadyBooked(LedgerError):
    """The user already holds a confirmed booking for this class."""


class ConflictAlreadyCancelled(LedgerError):
    """Strict cancel of a booking that is already cancelled."""


class InvalidClassChange(LedgerError):
    """An owner edit would break a class invariant."""
