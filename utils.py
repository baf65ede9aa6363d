"""
Utility helpers for timezone handling.
Class times are stored as UTC ISO strings; the studio schedules in local time.
"""
from datetime import datetime, timedelta
import pytz

import config

UTC = pytz.UTC
DISPLAY_FORMAT = "%d %b %Y, %I:%M %p"


def get_timezone(name: str):
    """Look up a timezone by name. Raises pytz.UnknownTimeZoneError."""
    return pytz.timezone(name)


def studio_tz():
    return pytz.timezone(config.STUDIO_TIMEZONE)


def ensure_studio_tz(dt: datetime) -> datetime:
    """Treat a naive datetime as studio local time; leave aware ones alone"""
    if dt.tzinfo is None:
        return studio_tz().localize(dt)
    return dt


def to_utc(dt: datetime) -> datetime:
    """Convert to UTC (naive input is studio local time)"""
    return ensure_studio_tz(dt).astimezone(UTC)


def to_utc_iso(dt: datetime) -> str:
    return to_utc(dt).isoformat(timespec="seconds")


def parse_utc(value: str) -> datetime:
    """Parse a stored UTC string back into an aware datetime"""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def from_utc(utc_dt: datetime, to_tz: str) -> datetime:
    """Convert UTC to any timezone"""
    if utc_dt.utcoffset() != timedelta(0):
        raise ValueError("Input must be UTC datetime")
    return utc_dt.astimezone(pytz.timezone(to_tz))


def format_local(utc_value: str, tz_name: str) -> str:
    """Render a stored UTC string in the named tz, e.g. '21 Oct 2026, 07:00 AM'"""
    return from_utc(parse_utc(utc_value), tz_name).strftime(DISPLAY_FORMAT)


def format_datetime(dt: datetime) -> str:
    """Format datetime with timezone abbreviation"""
    return dt.strftime(DISPLAY_FORMAT + " %Z")
