# clinic_core/billing/drafts.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from clinic_core.appointments.models import Appointment
from clinic_core.billing.engine import ServiceLineItem
from clinic_core.billing.models import BillSource, PaymentMethod
from clinic_core.billing.money import ZERO


@dataclass(frozen=True)
class UnbilledVisit:
    """
    Read-only projection of a completed visit with no live bill.
    Never persisted by billing.
    """
    source_id: UUID
    source_type: str
    patient_id: UUID
    consultation_fee: Decimal
    doctor_id: UUID | None
    appointment_date: dt.date
    patient_name: str = ""
    patient_uhid: str = ""
    patient_phone: str = ""
    doctor_name: str = ""

    @classmethod
    def from_appointment(cls, appt: Appointment) -> "UnbilledVisit":
        patient = appt.patient
        return cls(
            source_id=appt.id,
            source_type=appt.visit_type,
            patient_id=appt.patient_id,
            consultation_fee=appt.consultation_fee,
            doctor_id=appt.doctor_id,
            appointment_date=appt.appointment_date,
            patient_name=patient.full_name,
            patient_uhid=patient.uhid,
            patient_phone=patient.phone,
            doctor_name=appt.doctor_name,
        )


@dataclass
class BillDraft:
    """
    Unsaved bill handed to BillLedger.create.
    Totals and payment status are always derived there, never taken from here.
    """
    patient_id: UUID
    items: list[ServiceLineItem] = field(default_factory=list)
    tax_percent: Decimal = ZERO
    overall_discount: Decimal = ZERO
    source_type: str = BillSource.MANUAL
    source_id: UUID | None = None
    appointment_id: UUID | None = None
    doctor_id: UUID | None = None
    template_id: UUID | None = None
    payment_method: str = PaymentMethod.CASH
    payment_reference: str = ""
    amount_paid: Decimal = ZERO
    bill_date: dt.date | None = None
    due_date: dt.date | None = None
    notes: str = ""
