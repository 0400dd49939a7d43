"""
Decimal Money Helpers

All monetary values are Decimal quantities rounded to paise (2 places) with
ROUND_HALF_UP. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any, Optional

from .exceptions import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

ZERO = Decimal('0')
HUNDRED = Decimal('100')
MONEY_PLACES = Decimal('0.01')


def to_decimal(value: Any, field_name: str = "amount",
               default: Optional[Decimal] = None) -> Decimal:
    """
    Convert a request value to Decimal.

    Floats go through str() so 0.1 stays 0.1. Empty values return the
    default when one is given, otherwise raise ValidationError.
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    # NaN and Infinity can not be compared or converted to int
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number, got {value!r}")
    return result


def quantize_money(amount: Decimal) -> Decimal:
    """Round to currency precision"""
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def floor_at_zero(amount: Decimal) -> Decimal:
    """Clamp negative balances to zero"""
    return amount if amount > ZERO else ZERO


def decimal_or_none(value: Optional[str]) -> Optional[Decimal]:
    """Read an optional Decimal string from storage"""
    if value is None or value == "":
        return None
    return Decimal(value)
