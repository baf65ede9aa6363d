"""
Booking ledger: creates and cancels bookings while keeping each class's
current_capacity equal to its number of confirmed bookings.

Both operations run inside a single write transaction. The capacity change is
a conditional UPDATE whose affected-row count decides the outcome, so the
counter is never read, checked and written back in separate steps.
"""

import logging
from typing import Dict, Any

import databases_sql as db
from errors import NotFound, CapacityExceeded, AlreadyBooked, ConflictAlreadyCancelled
from utils import utc_now, to_utc_iso

logger = logging.getLogger("booking_api.ledger")

CONFIRMED = "confirmed"
WAITLIST = "waitlist"
CANCELLED = "cancelled"


def create_booking(user_id: int, class_id: int) -> Dict[str, Any]:
    """
    Book user_id onto class_id as confirmed and take one place.

    Raises NotFound for an unknown class or user, AlreadyBooked when the user
    already holds a confirmed booking for the class, and CapacityExceeded when
    the class is full. Nothing is written in any of those cases.
    """
    with db.transaction() as cur:
        if db.get_class_by_id(cur, class_id) is None:
            raise NotFound("Class not found")
        if db.get_user_by_id(cur, user_id) is None:
            raise NotFound("User not found")
        if db.find_confirmed_booking(cur, user_id, class_id) is not None:
            raise AlreadyBooked("You have already booked this class")

        if not db.update_class_capacity(cur, class_id, +1):
            logger.info("Booking rejected: class %s is full (user %s)", class_id, user_id)
            raise CapacityExceeded("Class is full")

        booking_id = db.insert_booking(cur, user_id, class_id, CONFIRMED, to_utc_iso(utc_now()))
        booking = db.get_booking_by_id(cur, booking_id)

    logger.info("Booking %s confirmed: user %s, class %s", booking_id, user_id, class_id)
    return booking


def cancel_booking(booking_id: int, strict: bool = False) -> Dict[str, Any]:
    """
    Cancel a booking, releasing its place only if it was confirmed.

    Cancelling an already cancelled booking leaves everything untouched and
    returns it, unless strict is set, in which case ConflictAlreadyCancelled
    is raised.
    """
    with db.transaction() as cur:
        booking = db.get_booking_by_id(cur, booking_id)
        if booking is None:
            raise NotFound("Booking not found")

        prior_status = booking["status"]
        if prior_status == CANCELLED:
            if strict:
                raise ConflictAlreadyCancelled("Booking is already cancelled")
            return booking

        # Guarded on the prior status: a second cancel matches no row.
        if db.update_booking_status(cur, booking_id, CANCELLED, expected_status=prior_status):
            if prior_status == CONFIRMED and not db.update_class_capacity(cur, booking["class_id"], -1):
                logger.warning(
                    "Class %s counter already at zero while cancelling confirmed booking %s",
                    booking["class_id"], booking_id,
                )

        booking = db.get_booking_by_id(cur, booking_id)

    logger.info("Booking %s cancelled (was %s)", booking_id, prior_status)
    return booking
