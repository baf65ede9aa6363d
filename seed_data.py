"""
Seed studio staff, two members and three classes (Hatha, Vinyasa Flow, Yin).
- Default: Adds missing users and classes only.
- --force: Deletes all classes (and with them all bookings) and re-seeds them at new times.
Class times are chosen in the studio timezone and stored as UTC strings.
"""

import logging
import sys
from datetime import datetime, timedelta
from decimal import Decimal

import config
from databases_sql import (
    init_db, list_classes, insert_class, delete_class, get_user_by_email, insert_user,
)
from utils import studio_tz, to_utc_iso, format_datetime

logger = logging.getLogger("booking_api.seed")

USERS = [
    ("owner@studio.example.com", "Maya", "Rao", "admin"),
    ("arjun@studio.example.com", "Arjun", "Mehta", "instructor"),
    ("priya@example.com", "Priya", "Nair", "member"),
    ("sam@example.com", "Sam", "Fernandes", "member"),
]


def seed_users():
    ids = {}
    for email, first_name, last_name, role in USERS:
        existing = get_user_by_email(email)
        if existing:
            ids[email] = existing["id"]
            continue
        ids[email] = insert_user(email, first_name, last_name, role=role)
        logger.info("Seeded user: %s (%s)", email, role)
    return ids


def clear_classes():
    """Delete every class; bookings cascade."""
    classes = list_classes()
    for cls in classes:
        delete_class(cls["id"])
    logger.info("Cleared %d classes and their bookings", len(classes))


def seed_classes(force=False):
    init_db()
    user_ids = seed_users()
    instructor_id = user_ids["arjun@studio.example.com"]
    now_local = datetime.now(studio_tz())

    def at(days, hour):
        return (now_local + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)

    classes = [
        ("Hatha Yoga", "Slow-paced postures and breathing for all levels.", at(1, 7), 60, 15, "12.00"),
        ("Vinyasa Flow", "Dynamic sequences linking breath and movement.", at(1, 18), 75, 20, "15.00"),
        ("Yin Yoga", "Long-held floor poses for deep release.", at(2, 19), 60, 12, "12.00"),
    ]

    if force:
        clear_classes()
    existing_titles = {c["title"] for c in list_classes()}

    for title, description, start_local, minutes, capacity, price in classes:
        if title in existing_titles:
            continue
        end_local = start_local + timedelta(minutes=minutes)
        insert_class(
            title, description, instructor_id,
            to_utc_iso(start_local), to_utc_iso(end_local),
            capacity, str(Decimal(price)),
        )
        logger.info("Seeded: %s at %s", title, format_datetime(start_local))


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    force_flag = "--force" in sys.argv
    seed_classes(force=force_flag)
