# clinic_core/billing/engine.py
"""
Pure bill arithmetic.

Every function here is a function of its inputs only: no ORM access and
no side effects. Money inputs are taken at 2 places (half-up) and sums
are exact, so a bill rebuilt from its stored items reproduces its totals.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from rest_framework.exceptions import ValidationError

from clinic_core.billing.money import HUNDRED, ZERO, clamp_non_negative, quantize_money, to_decimal


def _positive_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError({field_name: "Must be a whole number >= 1."})
    try:
        d = to_decimal(value, field_name)
    except ValidationError:
        raise ValidationError({field_name: "Must be a whole number >= 1."})
    if d != d.to_integral_value() or d < 1:
        raise ValidationError({field_name: "Must be a whole number >= 1."})
    return int(d)


def _non_negative(value, field_name: str) -> Decimal:
    d = to_decimal(value, field_name)
    if d < 0:
        raise ValidationError({field_name: "Must be >= 0."})
    return d


def _money_input(value, field_name: str) -> Decimal:
    # Same precision as the stored columns.
    return quantize_money(_non_negative(value, field_name))


@dataclass(frozen=True)
class ServiceLineItem:
    """One billable service entry. Validated on construction."""
    service_name: str
    quantity: int = 1
    unit_price: Decimal = ZERO
    days: int = 1
    discount: Decimal = ZERO
    service_code: str = ""

    def __post_init__(self):
        name = (self.service_name or "").strip()
        if not name:
            raise ValidationError({"service_name": "Service name is required."})
        object.__setattr__(self, "service_name", name)
        object.__setattr__(self, "quantity", _positive_int(self.quantity, "quantity"))
        object.__setattr__(self, "days", _positive_int(self.days, "days"))
        object.__setattr__(self, "unit_price", _money_input(self.unit_price, "unit_price"))
        object.__setattr__(self, "discount", _money_input(self.discount, "discount"))

    @property
    def line_total(self) -> Decimal:
        """Exact (unrounded) line total, clamped at zero."""
        return clamp_non_negative(self.unit_price * self.quantity * self.days - self.discount)


def line_total(item: ServiceLineItem) -> Decimal:
    return quantize_money(item.line_total)


def validate_tax_percent(tax_percent) -> Decimal:
    pct = to_decimal(tax_percent, "tax_percent")
    if pct < 0 or pct > HUNDRED:
        raise ValidationError({"tax_percent": "Tax percent must be between 0 and 100."})
    return pct


def _exact_subtotal(items: Iterable[ServiceLineItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def compute_subtotal(items: Iterable[ServiceLineItem]) -> Decimal:
    return quantize_money(_exact_subtotal(items))


def compute_tax(subtotal, tax_percent) -> Decimal:
    base = _non_negative(subtotal, "subtotal")
    pct = validate_tax_percent(tax_percent)
    return quantize_money(base * pct / HUNDRED)


def compute_grand_total(subtotal, tax, overall_discount) -> Decimal:
    base = _non_negative(subtotal, "subtotal")
    tax_d = _non_negative(tax, "tax_amount")
    discount = _non_negative(overall_discount, "overall_discount")
    return quantize_money(clamp_non_negative(base + tax_d - discount))


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    tax_percent: Decimal
    tax_amount: Decimal
    overall_discount: Decimal
    total_amount: Decimal


def compute_totals(items: Iterable[ServiceLineItem], tax_percent=ZERO, overall_discount=ZERO) -> BillTotals:
    items = list(items)
    pct = quantize_money(validate_tax_percent(tax_percent))
    discount = _money_input(overall_discount, "overall_discount")

    subtotal = compute_subtotal(items)
    tax_amount = compute_tax(subtotal, pct)
    total_amount = compute_grand_total(subtotal, tax_amount, discount)

    return BillTotals(
        subtotal=subtotal,
        tax_percent=pct,
        tax_amount=tax_amount,
        overall_discount=discount,
        total_amount=total_amount,
    )
