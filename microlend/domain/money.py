"""Currency arithmetic helpers - all money is Decimal with 2 places"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from microlend.domain.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Numeric = Union[int, float, str, Decimal]


def to_decimal(value: Numeric, field: str = "amount") -> Decimal:
    """Strict conversion; rejects NaN, infinity, booleans and junk input"""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        # str() keeps floats like 0.1 at their printed value
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"{field} must be a number") from e

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def round_money(value: Numeric) -> Decimal:
    """Round half-up at the cent level"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
