"""Shared request-parsing helpers for the checklist blueprints.

parse_date_input:  ISO / DD.MM.YYYY date strings, raises ValueError on bad input
parse_bool_arg:    query-string booleans (?cascade=true)
parse_int:         ids coming from JSON bodies
"""
import logging
from datetime import date, datetime

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, DD.MM.YYYY, date objects.
    Empty input returns None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValueError(
            "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        ) from exc


def parse_bool_arg(value, default=False):
    """Interpret a query-string flag. Missing → ``default``."""
    if value is None:
        return default
    return str(value).strip().lower() in _TRUTHY


def parse_int(value):
    """Return ``value`` as an int, or None if it is not a whole number.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None
