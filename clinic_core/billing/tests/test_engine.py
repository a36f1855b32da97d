# clinic_core/billing/tests/test_engine.py
from decimal import Decimal

import pytest
from rest_framework.exceptions import ValidationError

from clinic_core.billing.engine import (
    ServiceLineItem,
    compute_grand_total,
    compute_subtotal,
    compute_tax,
    compute_totals,
    line_total,
)
from clinic_core.billing.money import quantize_money, to_decimal, to_money


def test_line_total_multiplies_price_quantity_and_days():
    item = ServiceLineItem(service_name="Room", quantity=2, unit_price=Decimal("750.00"), days=3)
    assert line_total(item) == Decimal("4500.00")


def test_line_total_is_clamped_at_zero_when_discount_exceeds_gross():
    item = ServiceLineItem(service_name="Dressing", unit_price=Decimal("100.00"), discount=Decimal("250.00"))
    assert line_total(item) == Decimal("0.00")


def test_line_item_strips_name_and_requires_one():
    assert ServiceLineItem(service_name="  ECG  ").service_name == "ECG"

    with pytest.raises(ValidationError):
        ServiceLineItem(service_name="   ")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quantity": -1},
        {"quantity": 0},
        {"quantity": Decimal("1.5")},
        {"days": 0},
        {"unit_price": Decimal("-0.01")},
        {"discount": Decimal("-5")},
        {"unit_price": "abc"},
    ],
)
def test_line_item_rejects_invalid_values(kwargs):
    with pytest.raises(ValidationError):
        ServiceLineItem(service_name="X-Ray", **kwargs)


def test_two_items_with_tax_and_discount():
    items = [
        ServiceLineItem(service_name="Consultation", quantity=1, unit_price=Decimal("500")),
        ServiceLineItem(service_name="Lab Test", quantity=1, unit_price=Decimal("800")),
    ]

    totals = compute_totals(items, tax_percent=Decimal("5"), overall_discount=Decimal("50"))

    assert totals.subtotal == Decimal("1300.00")
    assert totals.tax_amount == Decimal("65.00")
    assert totals.total_amount == Decimal("1315.00")


def test_sub_cent_inputs_are_taken_at_two_places():
    item = ServiceLineItem(service_name="Dressing", quantity=3, unit_price=Decimal("0.335"), discount=Decimal("0.004"))

    assert item.unit_price == Decimal("0.34")
    assert item.discount == Decimal("0.00")
    assert compute_subtotal([item]) == Decimal("1.02")


def test_totals_use_the_stored_precision_of_tax_and_discount():
    items = [ServiceLineItem(service_name="Consultation", unit_price=Decimal("100"))]

    totals = compute_totals(items, tax_percent=Decimal("5.125"), overall_discount=Decimal("0.333"))

    assert totals.tax_percent == Decimal("5.13")
    assert totals.tax_amount == Decimal("5.13")
    assert totals.overall_discount == Decimal("0.33")
    assert totals.total_amount == Decimal("104.80")


def test_tax_rounds_half_up():
    assert compute_tax(Decimal("10.10"), Decimal("5")) == Decimal("0.51")
    assert compute_tax(Decimal("0.10"), Decimal("5")) == Decimal("0.01")


@pytest.mark.parametrize("pct", [Decimal("-1"), Decimal("100.01"), "ten"])
def test_tax_percent_out_of_range_rejected(pct):
    with pytest.raises(ValidationError):
        compute_tax(Decimal("100"), pct)


def test_grand_total_never_negative():
    assert compute_grand_total(Decimal("100"), Decimal("5"), Decimal("500")) == Decimal("0.00")


def test_empty_bill_totals_are_zero():
    totals = compute_totals([])
    assert totals.subtotal == Decimal("0.00")
    assert totals.total_amount == Decimal("0.00")


def test_money_helpers_reject_bad_input():
    assert to_decimal(0.1, "amount") == Decimal("0.1")
    assert quantize_money(Decimal("2.675")) == Decimal("2.68")
    assert to_money("12.345", "amount") == Decimal("12.35")

    for bad in (None, True, "NaN", "Infinity", "1,000"):
        with pytest.raises(ValidationError):
            to_decimal(bad, "amount")

    with pytest.raises(ValidationError):
        to_money("-1", "amount")
