# clinic_core/billing/money.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from rest_framework.exceptions import ValidationError

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value, field_name: str) -> Decimal:
    """
    Accepts Decimal / str / int / float and converts to an exact Decimal.
    Raises ValidationError for invalid or non-finite values.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError({field_name: "Invalid decimal value."})
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            # str() keeps floats from leaking binary noise (0.1 -> "0.1")
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError({field_name: "Invalid decimal value."})
    if not d.is_finite():
        raise ValidationError({field_name: "Invalid decimal value."})
    return d


def quantize_money(value: Decimal) -> Decimal:
    """Round half-up to 2 decimals. Only call at persistence/display boundaries."""
    return Decimal(value).quantize(Q2, rounding=ROUND_HALF_UP)


def to_money(value, field_name: str) -> Decimal:
    """Parse a non-negative amount and round it to 2 decimals."""
    d = to_decimal(value, field_name)
    if d < 0:
        raise ValidationError({field_name: "Must be >= 0."})
    return quantize_money(d)


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > 0 else ZERO
