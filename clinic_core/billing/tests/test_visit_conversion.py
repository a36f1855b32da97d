# clinic_core/billing/tests/test_visit_conversion.py
from decimal import Decimal

import pytest
from rest_framework.exceptions import NotFound

from clinic_core.appointments.models import AppointmentStatus, VisitType
from clinic_core.billing.drafts import UnbilledVisit
from clinic_core.billing.engine import ServiceLineItem
from clinic_core.billing.models import BillSource, PaymentStatus
from clinic_core.billing.services import BillLedger, VisitToBillConverter
from clinic_core.common.api.exceptions import ConflictError


@pytest.mark.django_db
def test_default_consultation_line_from_fee(clinic, appointment):
    visit = VisitToBillConverter.resolve_visit(
        tenant_id=clinic.tenant_id,
        clinic_id=clinic.id,
        appointment_id=appointment.id,
    )
    draft = VisitToBillConverter.to_draft(visit)

    assert len(draft.items) == 1
    assert draft.items[0].service_name == "Consultation"
    assert draft.items[0].unit_price == Decimal("500.00")
    assert draft.appointment_id == appointment.id
    assert draft.source_type == BillSource.APPOINTMENT
    assert draft.doctor_id == appointment.doctor_id

    bill = BillLedger.create(tenant_id=clinic.tenant_id, clinic_id=clinic.id, draft=draft)

    assert bill.total_amount == Decimal("500.00")
    assert bill.amount_paid == Decimal("0.00")
    assert bill.payment_status == PaymentStatus.PENDING


@pytest.mark.django_db
def test_caller_items_replace_default_line(clinic, appointment):
    visit = UnbilledVisit.from_appointment(appointment)
    draft = VisitToBillConverter.to_draft(
        visit,
        items=[
            ServiceLineItem(service_name="Consultation", unit_price=Decimal("500")),
            ServiceLineItem(service_name="ECG", unit_price=Decimal("400")),
        ],
        tax_percent=Decimal("5"),
    )

    bill = BillLedger.create(tenant_id=clinic.tenant_id, clinic_id=clinic.id, draft=draft)

    assert [i.service_name for i in bill.items.all()] == ["Consultation", "ECG"]
    assert bill.subtotal == Decimal("900.00")
    assert bill.tax_amount == Decimal("45.00")
    assert bill.total_amount == Decimal("945.00")


@pytest.mark.django_db
def test_adhoc_visit_has_no_appointment_id(clinic, make_visit):
    walk_in = make_visit(visit_type=VisitType.ADHOC, fee="300.00")

    draft = VisitToBillConverter.to_draft(UnbilledVisit.from_appointment(walk_in))

    assert draft.source_type == BillSource.ADHOC
    assert draft.source_id == walk_in.id
    assert draft.appointment_id is None


@pytest.mark.django_db
def test_zero_fee_visit_gives_zero_total_pending_bill(clinic, make_visit):
    visit = make_visit(fee="0.00")
    draft = VisitToBillConverter.to_draft(UnbilledVisit.from_appointment(visit))

    bill = BillLedger.create(tenant_id=clinic.tenant_id, clinic_id=clinic.id, draft=draft)

    assert bill.total_amount == Decimal("0.00")
    assert bill.payment_status == PaymentStatus.PENDING


@pytest.mark.django_db
def test_only_completed_visits_can_be_billed(clinic, make_visit):
    scheduled = make_visit(status=AppointmentStatus.SCHEDULED)

    with pytest.raises(ConflictError):
        VisitToBillConverter.resolve_visit(
            tenant_id=clinic.tenant_id,
            clinic_id=clinic.id,
            appointment_id=scheduled.id,
        )


@pytest.mark.django_db
def test_visit_from_another_clinic_is_not_found(clinic, other_clinic, appointment):
    with pytest.raises(NotFound):
        VisitToBillConverter.resolve_visit(
            tenant_id=other_clinic.tenant_id,
            clinic_id=other_clinic.id,
            appointment_id=appointment.id,
        )
