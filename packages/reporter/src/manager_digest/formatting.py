"""Display formatting for money amounts and dates."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENTS = Decimal("0.01")

# "1,234.50" -> "1 234,50"
_SEPARATORS = str.maketrans({",": " ", ".": ","})


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce a stored amount to Decimal.

    Missing, malformed, boolean and non-finite values fall back to
    ``default`` instead of raising.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    return result if result.is_finite() else default


def format_money(amount: Any) -> str:
    """Format an amount with two decimals, a comma decimal mark and space groups.

    Examples:
        >>> format_money(12345.6)
        '12 345,60'
        >>> format_money("-1234567.891")
        '-1 234 567,89'
    """
    value = to_decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
    if value == 0:
        value = abs(value)
    return f"{value:,.2f}".translate(_SEPARATORS)


def format_date(value: date | datetime) -> str:
    """Format a date as zero-padded DD.MM.YYYY."""
    return f"{value.day:02d}.{value.month:02d}.{value.year:04d}"
