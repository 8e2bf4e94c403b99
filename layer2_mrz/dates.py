"""
Layer 2 — MRZ Decoding
Component: Date normalizer
Responsibility: Turn compact YYMMDD dates into display dates
Output: "MM/DD/YYYY" or "DD/MM/YYYY" string, or the "Invalid date" sentinel

Century disambiguation is a heuristic. Expiry dates always resolve to the
2000s. Birth dates resolve to the 1900s when the two-digit year is greater
than the current year's last two digits plus 10, otherwise to the 2000s.
The pivot moves with the wall clock, so results for dates near the pivot
can differ between years.
"""
import logging
from datetime import date, datetime
from enum import Enum

logger = logging.getLogger(__name__)

INVALID_DATE = "Invalid date"

BIRTH_CENTURY_MARGIN = 10


class DateOrder(Enum):
    """Field order of the display date"""
    MONTH_FIRST = "MDY"
    DAY_FIRST = "DMY"

    @classmethod
    def from_name(cls, name):
        """
        Parse a configuration value ("MDY", "DMY" or a member name)

        Raises:
            ValueError: If the name matches no order
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().upper()
        for order in cls:
            if key in (order.value, order.name):
                return order
        raise ValueError(f"Unknown date order: {name!r} (expected MDY or DMY)")


def _resolve_year(year2, is_expiry, current_year):
    if is_expiry:
        return 2000 + year2
    if current_year is None:
        current_year = datetime.now().year
    threshold = current_year % 100 + BIRTH_CENTURY_MARGIN
    if year2 > threshold:
        return 1900 + year2
    return 2000 + year2


def expand_date(compact, is_expiry=False, current_year=None):
    """
    Resolve a compact YYMMDD date to a calendar date

    Args:
        compact: Six digit date string from the MRZ
        is_expiry: True for expiry dates (always 20xx)
        current_year: Year used for the birth date pivot (defaults to now)

    Returns:
        datetime.date, or None if the value is not a valid date

    Raises:
        TypeError: If compact is not a string
    """
    if not isinstance(compact, str):
        raise TypeError(f"compact date must be str, not {type(compact).__name__}")

    if len(compact) != 6:
        return None

    year_part, month_part, day_part = compact[0:2], compact[2:4], compact[4:6]
    if not (compact.isascii() and compact.isdigit()):
        logger.debug(f"Non-numeric compact date: {compact!r}")
        return None

    month = int(month_part)
    day = int(day_part)
    full_year = _resolve_year(int(year_part), is_expiry, current_year)

    try:
        parsed = date(full_year, month, day)
    except ValueError as e:
        logger.debug(f"Rejected compact date {compact!r}: {e}")
        return None

    # Calendar must not roll over (e.g. 31 in a 30-day month)
    if parsed.month != month or parsed.day != day:
        return None

    return parsed


def format_date(value, order=DateOrder.MONTH_FIRST):
    """Format a calendar date with zero-padded fields and a four-digit year"""
    order = DateOrder.from_name(order)
    if order is DateOrder.DAY_FIRST:
        return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"
    return f"{value.month:02d}/{value.day:02d}/{value.year:04d}"


def normalize_date(compact, is_expiry=False, order=DateOrder.MONTH_FIRST, current_year=None):
    """
    Normalize a compact MRZ date for display

    Every malformed value (wrong length, non-digits, impossible month or
    day) collapses to the same INVALID_DATE sentinel.

    Args:
        compact: Six digit date string (YYMMDD)
        is_expiry: Century hint; expiry dates are always 20xx
        order: DateOrder for the output fields
        current_year: Year used for the birth date pivot (defaults to now)

    Returns:
        str: Formatted date or INVALID_DATE
    """
    parsed = expand_date(compact, is_expiry=is_expiry, current_year=current_year)
    if parsed is None:
        return INVALID_DATE
    return format_date(parsed, order)


def is_invalid(value):
    """True when a display date is the invalid sentinel"""
    return value == INVALID_DATE
