# clinic_core/billing/models.py
from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone

from clinic_core.billing.engine import ServiceLineItem
from clinic_core.common.models import ScopedModel
from clinic_core.patients.models import Patient


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PARTIAL = "partial", "Partially Paid"
    PAID = "paid", "Paid"


class BillSource(models.TextChoices):
    APPOINTMENT = "appointment", "Appointment"
    ADHOC = "adhoc", "Walk-in Visit"
    MANUAL = "manual", "Staff Entered"


class PaymentMethod(models.TextChoices):
    CASH = "cash", "Cash"
    CARD = "card", "Card"
    UPI = "upi", "UPI"
    BANK = "bank", "Bank Transfer"
    INSURANCE = "insurance", "Insurance"
    OTHER = "other", "Other"


def derive_payment_status(total_amount: Decimal, amount_paid: Decimal) -> str:
    """
    The one place payment status is decided.

    pending: nothing paid; paid: total covered (and total > 0); partial: otherwise.
    """
    if amount_paid <= 0:
        return PaymentStatus.PENDING
    if total_amount > 0 and amount_paid >= total_amount:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


class BillQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)


class Bill(ScopedModel):
    """
    Billable record for a visit (or a staff-entered bill).

    subtotal / tax_amount / total_amount / balance_due are derived by the
    ledger and never written directly by callers.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="bills")

    # Only set for appointment-sourced bills; one live bill per appointment.
    appointment_id = models.UUIDField(null=True, blank=True)
    source_type = models.CharField(max_length=16, choices=BillSource.choices, default=BillSource.MANUAL)
    source_id = models.UUIDField(null=True, blank=True)

    doctor_id = models.UUIDField(null=True, blank=True)
    template_id = models.UUIDField(null=True, blank=True)  # receipt template, opaque

    bill_number = models.CharField(max_length=32, blank=True)
    bill_date = models.DateField(default=timezone.localdate, db_index=True)
    due_date = models.DateField(null=True, blank=True)

    tax_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    overall_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    balance_due = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    payment_reference = models.CharField(max_length=64, blank=True)
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)
    created_by_user_id = models.IntegerField(null=True, blank=True)

    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_reason = models.CharField(max_length=255, blank=True)

    objects = BillQuerySet.as_manager()

    class Meta:
        db_table = "billing_bill"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "clinic_id", "appointment_id"],
                condition=Q(deleted_at__isnull=True, appointment_id__isnull=False),
                name="uq_live_bill_per_appointment",
            ),
            models.UniqueConstraint(
                fields=["tenant_id", "clinic_id", "source_id"],
                condition=Q(deleted_at__isnull=True, source_id__isnull=False),
                name="uq_live_bill_per_visit",
            ),
            models.UniqueConstraint(
                fields=["tenant_id", "clinic_id", "bill_number"],
                condition=~Q(bill_number=""),
                name="uq_bill_scope_number",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "clinic_id", "payment_status", "bill_date"]),
            models.Index(fields=["tenant_id", "clinic_id", "patient", "bill_date"]),
        ]

    def __str__(self) -> str:
        return f"Bill({self.bill_number or self.id}, {self.payment_status})"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def refresh_payment_state(self) -> None:
        """Re-derive balance and status from total/paid. Call after any amount change."""
        self.balance_due = self.total_amount - self.amount_paid
        self.payment_status = derive_payment_status(self.total_amount, self.amount_paid)
        if self.payment_status == PaymentStatus.PAID:
            self.paid_at = self.paid_at or timezone.now()
        else:
            self.paid_at = None

    def mark_deleted(self, reason: str = "") -> None:
        self.deleted_at = timezone.now()
        self.deleted_reason = reason or ""


class BillItem(ScopedModel):
    """
    Snapshot line item owned by exactly one bill.
    line_total = max(0, unit_price * quantity * days - discount)
    """
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="items")

    sort_order = models.PositiveIntegerField(default=1)
    service_code = models.SlugField(max_length=64, blank=True)
    service_name = models.CharField(max_length=255)

    quantity = models.PositiveIntegerField(default=1)
    days = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        db_table = "billing_bill_item"
        ordering = ["sort_order", "created_at"]
        indexes = [
            models.Index(fields=["tenant_id", "clinic_id", "bill"]),
        ]

    def as_line_item(self) -> ServiceLineItem:
        return ServiceLineItem(
            service_name=self.service_name,
            service_code=self.service_code,
            quantity=self.quantity,
            days=self.days,
            unit_price=self.unit_price,
            discount=self.discount,
        )


class BillNumberSequence(models.Model):
    """
    Last bill number issued per tenant+clinic.
    Locked and bumped inside the bill insert, so a rolled-back create gives its number back.
    """
    tenant_id = models.UUIDField(db_index=True)
    clinic_id = models.UUIDField(db_index=True)
    last_number = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "billing_bill_number_sequence"
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "clinic_id"], name="uq_bill_number_sequence_scope"),
        ]

    def __str__(self) -> str:
        return f"BillNumberSequence({self.clinic_id}, {self.last_number})"
