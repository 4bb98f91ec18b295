"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import re

# Placeholders banks print in place of an empty amount
_EMPTY_MARKERS = {"", "-", "--", "—", "–", "−"}


def _normalize_separators(amount_str: str) -> str:
    """Resolve thousands and decimal separators to a plain ``1234.56`` form.

    - several dots, or several commas: they are thousands separators
    - one dot and one comma: the later one is the decimal mark
    - a single separator followed by exactly three digits: thousands
    """
    dot_count = amount_str.count(".")
    comma_count = amount_str.count(",")
    last_dot = amount_str.rfind(".")
    last_comma = amount_str.rfind(",")

    if dot_count > 1:
        amount_str = amount_str.replace(".", "")
        if amount_str.count(",") == 1:
            amount_str = amount_str.replace(",", ".")
    elif comma_count > 1:
        amount_str = amount_str.replace(",", "")
    elif dot_count == 1 and comma_count == 1:
        if last_dot > last_comma:
            amount_str = amount_str.replace(",", "")
        else:
            amount_str = amount_str.replace(".", "").replace(",", ".")
    elif dot_count == 1:
        if len(amount_str) - last_dot - 1 == 3:
            amount_str = amount_str.replace(".", "")
    elif comma_count == 1:
        if len(amount_str) - last_comma - 1 == 3:
            amount_str = amount_str.replace(",", "")
        else:
            amount_str = amount_str.replace(",", ".")
    return amount_str


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse an amount cell into a Decimal.

    Handles various formats:
    - "123.45", "1,234.56", "1.234,56", "111.244.435"
    - "$123.45", "₫1.000.000", "-123.45"
    - "(123.45)" (negative in parentheses)
    - numbers already typed by the spreadsheet

    Args:
        value: Amount string or number

    Returns:
        Decimal amount, or None for blank cells and dash placeholders

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    amount_str = str(value).strip()
    if amount_str in _EMPTY_MARKERS:
        return None

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    # Remove currency symbols, codes and inner whitespace
    amount_str = re.sub(r"[₫$€£¥\s ]", "", amount_str)
    amount_str = re.sub(r"^[A-Za-z]{3}|[A-Za-z]{3}$", "", amount_str)

    if amount_str.endswith("-"):
        is_negative = not is_negative
        amount_str = amount_str[:-1]
    if amount_str.startswith("-"):
        is_negative = not is_negative
        amount_str = amount_str[1:]
    elif amount_str.startswith("+"):
        amount_str = amount_str[1:]

    amount_str = _normalize_separators(amount_str)

    try:
        amount = Decimal(amount_str)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{value}': {e}")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{value}'")
    if is_negative:
        amount = -amount
    return amount


def looks_like_amount(value: Any) -> bool:
    """True when a cell parses as a non-empty amount."""
    try:
        return parse_amount(value) is not None
    except ValueError:
        return False
