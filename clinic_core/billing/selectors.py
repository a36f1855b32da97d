# clinic_core/billing/selectors.py
from __future__ import annotations

import datetime as dt
from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from django.db.models import Count, DecimalField, Exists, OuterRef, Q, QuerySet, Sum, Value
from django.db.models.functions import Coalesce

from clinic_core.appointments.models import Appointment
from clinic_core.appointments.selectors import completed_visits_qs
from clinic_core.billing.drafts import UnbilledVisit
from clinic_core.billing.exceptions import storage_errors
from clinic_core.billing.filters import filter_bills
from clinic_core.billing.models import Bill, PaymentStatus
from clinic_core.billing.money import ZERO, quantize_money
from clinic_core.common.api.pagination import PageResult, page_of
from clinic_core.patients.selectors import patient_search_q


# -------------------------------------------------------------------
# Bills
# -------------------------------------------------------------------

def bills_qs(*, tenant_id: UUID, clinic_id: UUID) -> QuerySet[Bill]:
    """Live (not soft-deleted) bills for one clinic."""
    return Bill.objects.alive().filter(tenant_id=tenant_id, clinic_id=clinic_id)


def get_bill(*, tenant_id: UUID, clinic_id: UUID, bill_id: UUID) -> Bill | None:
    return (
        bills_qs(tenant_id=tenant_id, clinic_id=clinic_id)
        .select_related("patient")
        .prefetch_related("items")
        .filter(id=bill_id)
        .first()
    )


def _date_range(qs: QuerySet, field: str, start_date: dt.date | None, end_date: dt.date | None) -> QuerySet:
    if start_date:
        qs = qs.filter(**{f"{field}__gte": start_date})
    if end_date:
        qs = qs.filter(**{f"{field}__lte": end_date})
    return qs


def bills_filtered(*, tenant_id: UUID, clinic_id: UUID, **filters) -> QuerySet[Bill]:
    """
    Live bills narrowed by BillFilter params (start_date, end_date, patient,
    payment_status, payment_method, service, search), newest first.
    """
    qs = (
        bills_qs(tenant_id=tenant_id, clinic_id=clinic_id)
        .select_related("patient")
        .prefetch_related("items")
        .order_by("-bill_date", "-created_at")
    )
    return filter_bills(qs, filters)


@storage_errors("listing billed bills")
def list_billed(*, tenant_id: UUID, clinic_id: UUID, page=1, limit=None, **filters) -> PageResult:
    """
    Bills with some money collected (partial or paid), newest first.
    An explicit payment_status filter narrows within that set.
    """
    qs = bills_filtered(tenant_id=tenant_id, clinic_id=clinic_id, **filters).exclude(
        payment_status=PaymentStatus.PENDING
    )
    return page_of(qs, page=page, limit=limit)


@storage_errors("listing pending bills")
def list_pending(*, tenant_id: UUID, clinic_id: UUID, page=1, limit=None, **filters) -> PageResult:
    filters["payment_status"] = PaymentStatus.PENDING
    qs = bills_filtered(tenant_id=tenant_id, clinic_id=clinic_id, **filters)
    return page_of(qs, page=page, limit=limit)


# -------------------------------------------------------------------
# Unbilled visits
# -------------------------------------------------------------------

def unbilled_visits_qs(
    *,
    tenant_id: UUID,
    clinic_id: UUID,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    search: str | None = None,
) -> QuerySet[Appointment]:
    """Completed visits that have no live bill."""
    live_bill = bills_qs(tenant_id=tenant_id, clinic_id=clinic_id).filter(
        Q(source_id=OuterRef("pk")) | Q(appointment_id=OuterRef("pk"))
    )
    qs = (
        completed_visits_qs(tenant_id=tenant_id, clinic_id=clinic_id)
        .filter(~Exists(live_bill))
        .order_by("-appointment_date", "-created_at")
    )
    qs = _date_range(qs, "appointment_date", start_date, end_date)

    if search:
        qs = qs.filter(patient_search_q(search.strip(), prefix="patient__"))

    return qs


@storage_errors("listing unbilled visits")
def list_unbilled(
    *,
    tenant_id: UUID,
    clinic_id: UUID,
    page=1,
    limit=None,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    search: str | None = None,
) -> PageResult:
    qs = unbilled_visits_qs(
        tenant_id=tenant_id,
        clinic_id=clinic_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    result = page_of(qs, page=page, limit=limit)
    return replace(result, items=[UnbilledVisit.from_appointment(appt) for appt in result.items])


# -------------------------------------------------------------------
# Summary
# -------------------------------------------------------------------

def _money_sum(field: str, **filter_kwargs):
    return Coalesce(
        Sum(field, filter=Q(**filter_kwargs) if filter_kwargs else None),
        Value(ZERO),
        output_field=DecimalField(max_digits=14, decimal_places=2),
    )


@storage_errors("building billing summary")
def billing_summary(
    *,
    tenant_id: UUID,
    clinic_id: UUID,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
) -> dict:
    """
    Aggregate counts and amounts for the billing dashboard.

    paid_total is the sum of amount_paid over paid bills only.
    unbilled_count uses appointment_date for the range, the rest bill_date.
    """
    bills = _date_range(bills_qs(tenant_id=tenant_id, clinic_id=clinic_id), "bill_date", start_date, end_date)

    agg = bills.aggregate(
        total_bills=Count("id"),
        pending_count=Count("id", filter=Q(payment_status=PaymentStatus.PENDING)),
        partial_count=Count("id", filter=Q(payment_status=PaymentStatus.PARTIAL)),
        paid_count=Count("id", filter=Q(payment_status=PaymentStatus.PAID)),
        paid_total=_money_sum("amount_paid", payment_status=PaymentStatus.PAID),
        total_revenue=_money_sum("total_amount"),
        total_collected=_money_sum("amount_paid"),
        total_outstanding=_money_sum("balance_due"),
    )

    unbilled_count = unbilled_visits_qs(
        tenant_id=tenant_id,
        clinic_id=clinic_id,
        start_date=start_date,
        end_date=end_date,
    ).count()

    return {
        "total_bills": agg["total_bills"],
        "unbilled_count": unbilled_count,
        "pending_count": agg["pending_count"],
        "partial_count": agg["partial_count"],
        "paid_count": agg["paid_count"],
        "paid_total": quantize_money(Decimal(agg["paid_total"])),
        "total_revenue": quantize_money(Decimal(agg["total_revenue"])),
        "total_collected": quantize_money(Decimal(agg["total_collected"])),
        "total_outstanding": quantize_money(Decimal(agg["total_outstanding"])),
    }
