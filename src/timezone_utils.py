# src/timezone_utils.py
#
# Timezone utilities for consistent date handling.
# Cohort schedules are kept in the program's local calendar (IST by default),
# so "today" always means today in APP_TIMEZONE, not on the server clock.

from datetime import date, datetime, timezone
from typing import Optional
import os

import pytz

DEFAULT_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Kolkata")

_tz = pytz.timezone(DEFAULT_TIMEZONE)


def now() -> datetime:
    """Get current timezone-aware datetime in the app timezone."""
    return datetime.now(_tz)


def today() -> date:
    """Current calendar day in the app timezone (no time component)."""
    return now().date()


def from_utc(dt: datetime) -> datetime:
    """
    Convert a UTC datetime to the default timezone.
    """
    if dt.tzinfo is None:
        # Assume naive datetime is UTC
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(_tz)


def make_aware(dt: datetime, tz: Optional[str] = None) -> datetime:
    """
    Make a naive datetime timezone-aware.

    Args:
        dt: Naive datetime
        tz: Timezone name (default: DEFAULT_TIMEZONE)

    Returns:
        Timezone-aware datetime

    Raises:
        pytz.UnknownTimeZoneError: if tz is not a known zone name
    """
    if dt.tzinfo is not None:
        return dt

    tz_obj = pytz.timezone(tz or DEFAULT_TIMEZONE)
    return tz_obj.localize(dt)


def parse_iso_with_tz(iso_string: str, tz: Optional[str] = None) -> datetime:
    """
    Parse ISO format string and ensure timezone awareness.
    A trailing 'Z' is read as UTC; with no offset at all the value is
    localized in tz (default: DEFAULT_TIMEZONE).
    """
    dt = datetime.fromisoformat(iso_string.replace('Z', '+00:00'))
    return make_aware(dt, tz)


def local_date_from_iso(value: str) -> date:
    """
    Calendar date of an ISO date or datetime string, in the app timezone.

    "2026-11-02" -> 2026-11-02
    "2026-11-01T18:30:00.000Z" -> 2026-11-02 (midnight IST sent from a browser)
    """
    if len(value) == 10:
        return date.fromisoformat(value)
    return from_utc(parse_iso_with_tz(value)).date()
