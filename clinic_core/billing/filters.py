# clinic_core/billing/filters.py
from __future__ import annotations

from typing import Any, Mapping

import django_filters
from django.db.models import Exists, OuterRef, Q, QuerySet
from rest_framework.exceptions import ValidationError

from clinic_core.billing.models import Bill, BillItem, PaymentMethod, PaymentStatus
from clinic_core.patients.selectors import patient_search_q


class BillFilter(django_filters.FilterSet):
    """
    Query filters shared by the billed and pending tabs.
    Dates apply to bill_date (inclusive on both ends).
    """
    start_date = django_filters.DateFilter(field_name="bill_date", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="bill_date", lookup_expr="lte")
    patient = django_filters.UUIDFilter(field_name="patient_id")
    payment_status = django_filters.ChoiceFilter(choices=PaymentStatus.choices)
    payment_method = django_filters.ChoiceFilter(choices=PaymentMethod.choices)
    service = django_filters.CharFilter(method="filter_service")
    search = django_filters.CharFilter(method="filter_search")
    ordering = django_filters.OrderingFilter(fields=("bill_date", "total_amount", "created_at"))

    class Meta:
        model = Bill
        fields = []

    def filter_service(self, queryset, name, value):
        # Exists keeps one row per bill when several items match.
        return queryset.filter(
            Exists(BillItem.objects.filter(bill_id=OuterRef("pk"), service_name__icontains=value))
        )

    def filter_search(self, queryset, name, value):
        return queryset.filter(patient_search_q(value, prefix="patient__") | Q(bill_number__icontains=value))


def filter_bills(queryset: QuerySet[Bill], params: Mapping[str, Any]) -> QuerySet[Bill]:
    """
    Apply BillFilter to a queryset.
    Unknown keys are ignored; invalid values raise ValidationError.
    """
    data = {k: v for k, v in params.items() if k in BillFilter.base_filters and v not in (None, "")}

    f = BillFilter(data=data, queryset=queryset)
    if not f.is_valid():
        raise ValidationError({field: list(errors) for field, errors in f.errors.items()})

    start, end = f.form.cleaned_data.get("start_date"), f.form.cleaned_data.get("end_date")
    if start and end and start > end:
        raise ValidationError({"end_date": "end_date must be on or after start_date."})

    return f.qs
