# clinic_core/billing/admin.py
from __future__ import annotations

from django.contrib import admin

from clinic_core.billing.models import Bill, BillItem


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0
    fields = ("sort_order", "service_code", "service_name", "quantity", "days", "unit_price", "discount", "line_total")
    readonly_fields = fields
    can_delete = False


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = (
        "bill_number",
        "bill_date",
        "tenant_id",
        "clinic_id",
        "patient",
        "total_amount",
        "amount_paid",
        "payment_status",
        "deleted_at",
    )
    list_filter = ("payment_status", "payment_method", "source_type", "bill_date")
    search_fields = ("id", "bill_number", "patient__full_name", "patient__uhid", "patient__phone")
    readonly_fields = (
        "subtotal",
        "tax_amount",
        "total_amount",
        "amount_paid",
        "balance_due",
        "payment_status",
        "paid_at",
        "deleted_at",
    )
    inlines = [BillItemInline]
    ordering = ("-bill_date", "-created_at")
