# clinic_core/billing/services.py
from __future__ import annotations

import logging
import re
from typing import Any, Iterable
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic_core.appointments.models import AppointmentStatus, VisitType
from clinic_core.appointments.selectors import get_appointment
from clinic_core.billing.drafts import BillDraft, UnbilledVisit
from clinic_core.billing.engine import BillTotals, ServiceLineItem, compute_totals, line_total
from clinic_core.billing.exceptions import DuplicateBillError, storage_errors
from clinic_core.billing.models import Bill, BillItem, BillNumberSequence, BillSource, PaymentMethod, PaymentStatus
from clinic_core.billing.money import ZERO, quantize_money, to_decimal, to_money
from clinic_core.billing.selectors import bills_qs, get_bill
from clinic_core.catalog.selectors import get_active_catalog_item
from clinic_core.common.api.exceptions import ConflictError
from clinic_core.patients.selectors import get_patient

logger = logging.getLogger(__name__)

BILL_NUMBER_RE = re.compile(r"BILL-(\d+)$")


def consultation_service_name() -> str:
    return getattr(settings, "BILLING_CONSULTATION_SERVICE_NAME", "Consultation")


def build_line_items(*, tenant_id: UUID, clinic_id: UUID, raw_items: Iterable[dict]) -> list[ServiceLineItem]:
    """
    Turn request-shaped item dicts into validated line items.

    A `service_code` pulls name and price from the clinic catalog when the
    caller leaves them out; explicit values always win.
    """
    items: list[ServiceLineItem] = []
    for idx, raw in enumerate(raw_items or []):
        code = (raw.get("service_code") or "").strip()
        name = raw.get("service_name") or ""
        unit_price = raw.get("unit_price")

        if code and (not name or unit_price is None):
            with storage_errors("loading catalog item"):
                catalog_item = get_active_catalog_item(tenant_id=tenant_id, clinic_id=clinic_id, code=code)
            if catalog_item is None:
                raise ValidationError({"items": {idx: f"Unknown service code '{code}'."}})
            name = name or catalog_item.name
            unit_price = catalog_item.default_price if unit_price is None else unit_price

        items.append(
            ServiceLineItem(
                service_name=name,
                service_code=code,
                quantity=raw.get("quantity", 1),
                days=raw.get("days", 1),
                unit_price=ZERO if unit_price is None else unit_price,
                discount=raw.get("discount") or ZERO,
            )
        )
    return items


class VisitToBillConverter:
    """
    Completed visit -> unsaved BillDraft. Never persists anything.
    """

    @staticmethod
    @storage_errors("loading visit")
    def resolve_visit(*, tenant_id: UUID, clinic_id: UUID, appointment_id: UUID) -> UnbilledVisit:
        appt = get_appointment(tenant_id=tenant_id, clinic_id=clinic_id, appointment_id=appointment_id)
        if appt is None:
            raise NotFound("Appointment not found.")
        if appt.status != AppointmentStatus.COMPLETED:
            raise ConflictError("Only completed visits can be billed.")
        return UnbilledVisit.from_appointment(appt)

    @staticmethod
    def source_fields(visit: UnbilledVisit) -> dict:
        """Appointment visits fill appointment_id; walk-ins are keyed on source_id only."""
        if visit.source_type == VisitType.APPOINTMENT:
            return {"source_type": BillSource.APPOINTMENT, "source_id": visit.source_id, "appointment_id": visit.source_id}
        return {"source_type": BillSource.ADHOC, "source_id": visit.source_id, "appointment_id": None}

    @staticmethod
    def to_draft(
        visit: UnbilledVisit,
        *,
        items: list[ServiceLineItem] | None = None,
        tax_percent=ZERO,
        overall_discount=ZERO,
        payment_method: str = PaymentMethod.CASH,
        template_id: UUID | None = None,
        notes: str = "",
    ) -> BillDraft:
        if not items:
            items = [
                ServiceLineItem(
                    service_name=consultation_service_name(),
                    quantity=1,
                    unit_price=visit.consultation_fee,
                )
            ]

        return BillDraft(
            patient_id=visit.patient_id,
            items=list(items),
            tax_percent=tax_percent,
            overall_discount=overall_discount,
            **VisitToBillConverter.source_fields(visit),
            doctor_id=visit.doctor_id,
            template_id=template_id,
            payment_method=payment_method,
            bill_date=timezone.localdate(),
            notes=notes or "",
        )


class BillLedger:
    """
    Bill write-model operations.

    Notes:
    - Totals are always recomputed through the engine; callers never set them.
    - One live bill per appointment (and per visit): the partial unique
      constraints are authoritative, the pre-check is only a fast path.
    - Rows are locked with select_for_update so writes on one bill serialize.
    """

    EDITABLE_FIELDS = frozenset(
        {
            "items",
            "tax_percent",
            "overall_discount",
            "payment_method",
            "payment_reference",
            "notes",
            "template_id",
            "doctor_id",
            "bill_date",
            "due_date",
            "amount_paid",
        }
    )

    # -------------------------
    # Internal helpers
    # -------------------------
    @staticmethod
    def _existing_for_source(
        *,
        tenant_id: UUID,
        clinic_id: UUID,
        appointment_id: UUID | None,
        source_id: UUID | None,
    ) -> Bill | None:
        qs = bills_qs(tenant_id=tenant_id, clinic_id=clinic_id)
        if appointment_id:
            found = qs.filter(appointment_id=appointment_id).first()
            if found:
                return found
        if source_id:
            return qs.filter(source_id=source_id).first()
        return None

    @staticmethod
    def _get_locked(*, tenant_id: UUID, clinic_id: UUID, bill_id: UUID) -> Bill:
        bill = (
            bills_qs(tenant_id=tenant_id, clinic_id=clinic_id)
            .select_for_update()
            .filter(id=bill_id)
            .first()
        )
        if bill is None:
            raise NotFound("Bill not found.")
        return bill

    @staticmethod
    def _highest_issued_number(*, tenant_id: UUID, clinic_id: UUID) -> int:
        latest = (
            Bill.objects.filter(tenant_id=tenant_id, clinic_id=clinic_id, bill_number__startswith="BILL-")
            .order_by("-created_at", "-bill_number")
            .values_list("bill_number", flat=True)
            .first()
        )
        m = BILL_NUMBER_RE.match((latest or "").strip())
        return int(m.group(1)) if m else 0

    @staticmethod
    def _next_bill_number_locked(*, tenant_id: UUID, clinic_id: UUID) -> str:
        """
        Bump the clinic's counter row under a row lock.
        Concurrent creates queue on the lock instead of racing for the same number.
        """
        seq, _ = BillNumberSequence.objects.select_for_update().get_or_create(
            tenant_id=tenant_id,
            clinic_id=clinic_id,
            defaults={
                "last_number": lambda: BillLedger._highest_issued_number(tenant_id=tenant_id, clinic_id=clinic_id)
            },
        )
        BillNumberSequence.objects.filter(pk=seq.pk).update(last_number=F("last_number") + 1)
        seq.refresh_from_db(fields=["last_number"])
        return f"BILL-{seq.last_number:06d}"

    @staticmethod
    def _apply_totals(bill: Bill, totals: BillTotals) -> None:
        bill.tax_percent = totals.tax_percent
        bill.overall_discount = totals.overall_discount
        bill.subtotal = totals.subtotal
        bill.tax_amount = totals.tax_amount
        bill.total_amount = totals.total_amount

    @staticmethod
    def _write_items(bill: Bill, items: list[ServiceLineItem]) -> None:
        BillItem.objects.bulk_create(
            [
                BillItem(
                    tenant_id=bill.tenant_id,
                    clinic_id=bill.clinic_id,
                    bill=bill,
                    sort_order=idx,
                    service_code=item.service_code,
                    service_name=item.service_name,
                    quantity=item.quantity,
                    days=item.days,
                    unit_price=to_money(item.unit_price, "unit_price"),
                    discount=to_money(item.discount, "discount"),
                    line_total=line_total(item),
                )
                for idx, item in enumerate(items, start=1)
            ]
        )

    @staticmethod
    def _check_paid_within_total(amount_paid, totals: BillTotals, field_name: str) -> None:
        if amount_paid > totals.total_amount:
            raise ValidationError(
                {field_name: f"Amount paid ({amount_paid}) cannot exceed the bill total ({totals.total_amount})."}
            )

    # -------------------------
    # Read
    # -------------------------
    @staticmethod
    @storage_errors("loading bill")
    def get(*, tenant_id: UUID, clinic_id: UUID, bill_id: UUID) -> Bill:
        bill = get_bill(tenant_id=tenant_id, clinic_id=clinic_id, bill_id=bill_id)
        if bill is None:
            raise NotFound("Bill not found.")
        return bill

    # -------------------------
    # Create (one live bill per appointment)
    # -------------------------
    @staticmethod
    @storage_errors("creating bill")
    @transaction.atomic
    def create(
        *,
        tenant_id: UUID,
        clinic_id: UUID,
        draft: BillDraft,
        created_by_user_id: int | None = None,
    ) -> Bill:
        existing = BillLedger._existing_for_source(
            tenant_id=tenant_id,
            clinic_id=clinic_id,
            appointment_id=draft.appointment_id,
            source_id=draft.source_id,
        )
        if existing is not None:
            logger.warning(
                "Duplicate bill attempt for appointment=%s source=%s; existing bill %s",
                draft.appointment_id,
                draft.source_id,
                existing.id,
            )
            raise DuplicateBillError(existing.id)

        if get_patient(tenant_id=tenant_id, clinic_id=clinic_id, patient_id=draft.patient_id) is None:
            raise NotFound("Patient not found.")

        totals = compute_totals(draft.items, draft.tax_percent, draft.overall_discount)
        amount_paid = to_money(draft.amount_paid or ZERO, "amount_paid")
        BillLedger._check_paid_within_total(amount_paid, totals, "amount_paid")

        bill = Bill(
            tenant_id=tenant_id,
            clinic_id=clinic_id,
            patient_id=draft.patient_id,
            appointment_id=draft.appointment_id,
            source_type=draft.source_type,
            source_id=draft.source_id,
            doctor_id=draft.doctor_id,
            template_id=draft.template_id,
            bill_date=draft.bill_date or timezone.localdate(),
            due_date=draft.due_date,
            payment_method=draft.payment_method or PaymentMethod.CASH,
            payment_reference=draft.payment_reference or "",
            notes=draft.notes or "",
            amount_paid=amount_paid,
            created_by_user_id=created_by_user_id,
        )
        BillLedger._apply_totals(bill, totals)
        bill.refresh_payment_state()

        try:
            with transaction.atomic():
                bill.bill_number = BillLedger._next_bill_number_locked(tenant_id=tenant_id, clinic_id=clinic_id)
                bill.save(force_insert=True)
                BillLedger._write_items(bill, draft.items)
        except IntegrityError:
            # Lost a race with a concurrent create; the winner is committed by now.
            winner = BillLedger._existing_for_source(
                tenant_id=tenant_id,
                clinic_id=clinic_id,
                appointment_id=draft.appointment_id,
                source_id=draft.source_id,
            )
            if winner is not None:
                logger.warning(
                    "Concurrent bill create for appointment=%s source=%s lost to bill %s",
                    draft.appointment_id,
                    draft.source_id,
                    winner.id,
                )
                raise DuplicateBillError(winner.id)
            logger.warning("Bill create hit a constraint conflict (bill number); caller may retry")
            raise ConflictError("Bill could not be saved due to a concurrent change. Please retry.")

        logger.info(
            "Created bill %s (%s) for patient %s total=%s status=%s",
            bill.id,
            bill.bill_number,
            bill.patient_id,
            bill.total_amount,
            bill.payment_status,
        )
        return bill

    # -------------------------
    # Update (recompute totals)
    # -------------------------
    @staticmethod
    @storage_errors("updating bill")
    @transaction.atomic
    def update(*, tenant_id: UUID, clinic_id: UUID, bill_id: UUID, **changes: Any) -> Bill:
        """
        Edit items / tax / discount / payment details and recompute totals.

        A new total below the amount already paid is rejected unless the
        caller also passes a corrective `amount_paid`. Status is re-derived,
        so an amount edit may move it backwards (administrative correction).
        """
        unknown = set(changes) - BillLedger.EDITABLE_FIELDS
        if unknown:
            raise ValidationError({field: "This field cannot be updated." for field in sorted(unknown)})

        bill = BillLedger._get_locked(tenant_id=tenant_id, clinic_id=clinic_id, bill_id=bill_id)

        new_items = changes.get("items")
        items = list(new_items) if new_items is not None else [it.as_line_item() for it in bill.items.all()]

        totals = compute_totals(
            items,
            changes["tax_percent"] if changes.get("tax_percent") is not None else bill.tax_percent,
            changes["overall_discount"] if changes.get("overall_discount") is not None else bill.overall_discount,
        )

        if changes.get("amount_paid") is not None:
            amount_paid = to_money(changes["amount_paid"], "amount_paid")
            BillLedger._check_paid_within_total(amount_paid, totals, "amount_paid")
        else:
            amount_paid = bill.amount_paid
            if amount_paid > totals.total_amount:
                raise ValidationError(
                    {
                        "total_amount": (
                            f"New total ({totals.total_amount}) is below the amount already paid "
                            f"({amount_paid}). Supply a corrected amount_paid."
                        )
                    }
                )

        previous_status = bill.payment_status
        BillLedger._apply_totals(bill, totals)
        bill.amount_paid = amount_paid
        bill.refresh_payment_state()

        for field in ("payment_method", "payment_reference", "notes", "bill_date"):
            if changes.get(field) is not None:
                setattr(bill, field, changes[field])
        for field in ("template_id", "doctor_id", "due_date"):
            if field in changes:
                setattr(bill, field, changes[field])

        bill.save()
        if new_items is not None:
            bill.items.all().delete()
            BillLedger._write_items(bill, items)

        if previous_status != bill.payment_status:
            logger.info("Bill %s status %s -> %s via edit", bill.id, previous_status, bill.payment_status)
        return bill

    # -------------------------
    # Delete (soft)
    # -------------------------
    @staticmethod
    @storage_errors("deleting bill")
    @transaction.atomic
    def delete(
        *,
        tenant_id: UUID,
        clinic_id: UUID,
        bill_id: UUID,
        override: bool = False,
        reason: str = "",
    ) -> None:
        bill = BillLedger._get_locked(tenant_id=tenant_id, clinic_id=clinic_id, bill_id=bill_id)

        if bill.payment_status != PaymentStatus.PENDING:
            if not override:
                raise ConflictError(
                    {
                        "detail": "Only pending bills can be deleted without an administrative override.",
                        "payment_status": bill.payment_status,
                    }
                )
            logger.warning(
                "Administrative override: deleting %s bill %s (paid %s)",
                bill.payment_status,
                bill.id,
                bill.amount_paid,
            )

        bill.mark_deleted(reason)
        bill.save(update_fields=["deleted_at", "deleted_reason", "updated_at"])

        logger.info("Deleted bill %s (%s)", bill.id, bill.bill_number)


class PaymentRecorder:
    """
    Payment accrual and direct status edits.
    amount_paid never exceeds total_amount; status always follows from the amounts.
    """

    PAYMENT_FIELDS = [
        "amount_paid",
        "balance_due",
        "payment_status",
        "paid_at",
        "payment_method",
        "payment_reference",
        "updated_at",
    ]

    @staticmethod
    def _apply_payment_details(bill: Bill, payment_method: str | None, payment_reference: str | None) -> None:
        if payment_method:
            bill.payment_method = payment_method
        if payment_reference is not None:
            bill.payment_reference = payment_reference

    @staticmethod
    @storage_errors("recording payment")
    @transaction.atomic
    def record_payment(
        *,
        tenant_id: UUID,
        clinic_id: UUID,
        bill_id: UUID,
        amount,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ) -> Bill:
        amount = quantize_money(to_decimal(amount, "amount"))
        if amount <= 0:
            raise ValidationError({"amount": "Payment amount must be > 0."})

        bill = BillLedger._get_locked(tenant_id=tenant_id, clinic_id=clinic_id, bill_id=bill_id)

        new_amount_paid = bill.amount_paid + amount
        if new_amount_paid > bill.total_amount:
            logger.warning(
                "Rejected overpayment on bill %s: paid=%s + %s > total=%s",
                bill.id,
                bill.amount_paid,
                amount,
                bill.total_amount,
            )
            raise ValidationError(
                {"amount": f"Overpayment: payment of {amount} exceeds the balance due of {bill.balance_due}."}
            )

        previous_status = bill.payment_status
        bill.amount_paid = new_amount_paid
        bill.refresh_payment_state()
        PaymentRecorder._apply_payment_details(bill, payment_method, payment_reference)

        bill.save(update_fields=PaymentRecorder.PAYMENT_FIELDS)

        logger.info(
            "Recorded payment of %s on bill %s (%s -> %s)",
            amount,
            bill.id,
            previous_status,
            bill.payment_status,
        )
        return bill

    @staticmethod
    @storage_errors("updating bill status")
    @transaction.atomic
    def set_status(
        *,
        tenant_id: UUID,
        clinic_id: UUID,
        bill_id: UUID,
        status: str,
        amount_paid=None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ) -> Bill:
        """
        Direct status edit ("Update Status").

        - paid: amount_paid is forced to the bill total.
        - partial: caller must supply 0 < amount_paid < total.
        - pending: amount_paid is reset to zero.
        """
        if status not in PaymentStatus.values:
            raise ValidationError({"payment_status": f"Unknown payment status '{status}'."})

        bill = BillLedger._get_locked(tenant_id=tenant_id, clinic_id=clinic_id, bill_id=bill_id)
        total = bill.total_amount

        if status == PaymentStatus.PAID:
            if total <= 0:
                raise ValidationError({"payment_status": "A zero-total bill cannot be marked paid."})
            new_amount_paid = total
        elif status == PaymentStatus.PARTIAL:
            if amount_paid is None:
                raise ValidationError({"amount_paid": "amount_paid is required for a partial status."})
            new_amount_paid = to_money(amount_paid, "amount_paid")
            if not (ZERO < new_amount_paid < total):
                raise ValidationError({"amount_paid": f"amount_paid must be between 0 and {total} (exclusive)."})
        else:
            if amount_paid is not None and to_money(amount_paid, "amount_paid") != ZERO:
                raise ValidationError({"amount_paid": "A pending bill has nothing paid."})
            new_amount_paid = ZERO

        previous_status = bill.payment_status
        bill.amount_paid = new_amount_paid
        bill.refresh_payment_state()
        PaymentRecorder._apply_payment_details(bill, payment_method, payment_reference)

        bill.save(update_fields=PaymentRecorder.PAYMENT_FIELDS)

        logger.info("Bill %s status %s -> %s (paid=%s)", bill.id, previous_status, bill.payment_status, bill.amount_paid)
        return bill
