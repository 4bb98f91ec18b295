"""Date parsing utilities."""

import re
from datetime import date, datetime, timedelta
from typing import Any, Optional
from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

# Statement date formats by display name, in detection priority order.
# dd/mm/yyyy comes first: it is the regionally likely reading of an
# ambiguous slash date.
STATEMENT_DATE_FORMATS: dict[str, str] = {
    "dd/mm/yyyy": "%d/%m/%Y",
    "mm/dd/yyyy": "%m/%d/%Y",
    "yyyy-mm-dd": "%Y-%m-%d",
    "dd.mm.yyyy": "%d.%m.%Y",
    "yyyy/mm/dd": "%Y/%m/%d",
    "dd MMM yyyy": "%d %b %Y",
    "dd-mm-yyyy": "%d-%m-%Y",
    "dd-MMM-yyyy": "%d-%b-%Y",
    "dd/mm/yy": "%d/%m/%y",
    "mm/dd/yy": "%m/%d/%y",
}

_TRAILING_TIME = re.compile(
    r"^(?P<date>.+?)[ T]+\d{1,2}:\d{2}(:\d{2}(\.\d+)?)?\s*([AaPp][Mm])?\s*(Z|[+-]\d{2}:?\d{2})?$"
)
_MONTH_NAME = re.compile(r"[A-Za-z]{3}")


def parse_date(date_str: str) -> date:
    """Parse a date string into a date object.

    Supports various formats including relative dates:
    - Absolute dates: "2024-01-15", "January 15, 2024", etc.
    - Relative dates: "today", "yesterday", "last month", "this year", etc.

    Args:
        date_str: Date string in various formats

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    date_str = date_str.strip().lower()
    today = date.today()

    # Handle relative dates
    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "tomorrow": today + timedelta(days=1),
    }

    if date_str in relative_dates:
        return relative_dates[date_str]

    # Handle "last/this" + time period
    if date_str.startswith("last "):
        period = date_str[5:]
        if period == "month":
            return (today - relativedelta(months=1)).replace(day=1)
        elif period == "year":
            return today.replace(month=1, day=1) - relativedelta(years=1)
        elif period == "week":
            days_since_monday = today.weekday()
            return today - timedelta(days=days_since_monday + 7)

    elif date_str.startswith("this "):
        period = date_str[5:]
        if period == "month":
            return today.replace(day=1)
        elif period == "year":
            return today.replace(month=1, day=1)
        elif period == "week":
            return today - timedelta(days=today.weekday())

    # Try parsing as absolute date
    try:
        dt = date_parser.parse(date_str)
        return dt.date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def strip_time_component(value: str) -> str:
    """Drop a trailing time such as ``14:30`` or ``T09:15:00Z`` from a date string."""
    value = value.strip()
    match = _TRAILING_TIME.match(value)
    if match:
        return match.group("date").strip()
    return value


def parse_with_format(value: str, date_format: str) -> Optional[date]:
    """Parse a date string under one format, returning None when it does not fit.

    ``date_format`` is a display name from STATEMENT_DATE_FORMATS or a raw
    strptime pattern.
    """
    pattern = STATEMENT_DATE_FORMATS.get(date_format, date_format)
    if "%" not in pattern:
        return None
    try:
        return datetime.strptime(value, pattern).date()
    except ValueError:
        return None


def parse_statement_date(value: Any, date_format: Optional[str] = None) -> Optional[date]:
    """Parse a statement date cell.

    Tries the given format first, then every supported format, then a
    textual-month fallback through dateutil. Returns None when nothing fits.

    Args:
        value: Cell value (string, date or datetime)
        date_format: Preferred format name or strptime pattern
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = strip_time_component(str(value))
    if not text:
        return None

    if date_format:
        parsed = parse_with_format(text, date_format)
        if parsed is not None:
            return parsed

    for name in STATEMENT_DATE_FORMATS:
        parsed = parse_with_format(text, name)
        if parsed is not None:
            return parsed

    if _MONTH_NAME.search(text):
        try:
            return date_parser.parse(text, dayfirst=True).date()
        except (ValueError, OverflowError):
            return None
    return None
