"""Shared utility functions.

utcnow:        timezone-aware "now" used for every timestamp default
as_utc:        normalises datetimes read back from SQLite (naive) to UTC
parse_date:    lenient ISO date parsing for request payloads
days_between:  ceil-days between two instants (gate processing time)
config_value:  app-config lookup usable from services
"""
import math
from datetime import date, datetime, timezone

from flask import current_app, has_app_context


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return *value* as an aware UTC datetime.

    SQLite drops tzinfo on round-trip, PostgreSQL keeps it. Naive values are
    assumed to be UTC because every write goes through ``utcnow()``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def parse_date(value):
    """Parse an ISO date (or datetime) string to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        return None


def days_between(start, end) -> int:
    """Whole days from *start* to *end*, rounded up (0 when either is missing)."""
    if start is None or end is None:
        return 0
    delta = as_utc(end) - as_utc(start)
    return math.ceil(delta.total_seconds() / 86400)


def config_value(key, default=None):
    """Read *key* from the active Flask app config, or *default* outside an app context."""
    if has_app_context():
        return current_app.config.get(key, default)
    return default
