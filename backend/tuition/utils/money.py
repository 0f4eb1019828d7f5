# tuition/utils/money.py
#
# Decimal helpers. Amounts coming from the UI or from PostgREST may be
# int, float, str or Decimal. Always go through to_decimal() so a
# float never leaks into a sum.

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from zoneinfo import ZoneInfo

from tuition.core.config import settings
from tuition.core.exceptions import ValidationError

CENTS = Decimal("0.01")
UNIT = Decimal("1")


def to_decimal(val) -> Decimal:
    if val is None or val == "":
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def money(val) -> Decimal:
    """Quantise to two decimals."""
    return to_decimal(val).quantize(CENTS, rounding=ROUND_HALF_UP)


def round_whole(val) -> Decimal:
    """Nearest whole currency unit, halves up."""
    return to_decimal(val).quantize(UNIT, rounding=ROUND_HALF_UP)


def local_today() -> date:
    """Today's date in the school's timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()


def local_timestamp() -> str:
    return datetime.now(ZoneInfo(settings.TIMEZONE)).isoformat(timespec="seconds")


def parse_amount(val, label: str) -> Decimal:
    """
    to_decimal() for user input: anything that is not a finite,
    non-negative number becomes a ValidationError.
    """
    try:
        number = to_decimal(val)
        if not number.is_finite():
            raise ValueError(val)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError(f"{label} must be a number, got {val!r}")
    if number < 0:
        raise ValidationError(f"{label} cannot be negative")
    return number
