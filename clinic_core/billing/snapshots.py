# clinic_core/billing/snapshots.py
from __future__ import annotations

from typing import Any

from django.conf import settings

from clinic_core.billing.models import Bill
from clinic_core.clinics.models import Clinic


def _money(value) -> str:
    return f"{value:.2f}"


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _uuid(value) -> str | None:
    return str(value) if value else None


def build_bill_snapshot(bill: Bill, clinic: Clinic | None = None) -> dict[str, Any]:
    """
    JSON-ready view of a bill for receipt/PDF/message composers.

    Amounts are fixed 2-place strings; dates are ISO-8601. Composers must
    render only what is here and never recompute totals.
    """
    patient = bill.patient

    return {
        "id": str(bill.id),
        "bill_number": bill.bill_number,
        "bill_date": _iso(bill.bill_date),
        "due_date": _iso(bill.due_date),
        "currency": getattr(settings, "BILLING_CURRENCY", "INR"),
        "source_type": bill.source_type,
        "source_id": _uuid(bill.source_id),
        "appointment_id": _uuid(bill.appointment_id),
        "doctor_id": _uuid(bill.doctor_id),
        "template_id": _uuid(bill.template_id),
        "clinic": {
            "id": str(bill.clinic_id),
            "name": clinic.name if clinic else "",
            "address": clinic.address if clinic else "",
            "phone": clinic.phone if clinic else "",
            "gstin": clinic.gstin if clinic else "",
        },
        "patient": {
            "id": str(patient.id),
            "name": patient.full_name,
            "uhid": patient.uhid,
            "phone": patient.phone,
            "email": patient.email,
        },
        "items": [
            {
                "service_code": item.service_code,
                "service_name": item.service_name,
                "quantity": item.quantity,
                "days": item.days,
                "unit_price": _money(item.unit_price),
                "discount": _money(item.discount),
                "line_total": _money(item.line_total),
            }
            for item in bill.items.all()
        ],
        "subtotal": _money(bill.subtotal),
        "tax_percent": _money(bill.tax_percent),
        "tax_amount": _money(bill.tax_amount),
        "overall_discount": _money(bill.overall_discount),
        "total_amount": _money(bill.total_amount),
        "amount_paid": _money(bill.amount_paid),
        "balance_due": _money(bill.balance_due),
        "payment_status": bill.payment_status,
        "payment_method": bill.payment_method,
        "payment_reference": bill.payment_reference,
        "paid_at": _iso(bill.paid_at),
        "notes": bill.notes,
        "created_at": _iso(bill.created_at),
    }
