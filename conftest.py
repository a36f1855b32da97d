# conftest.py
import uuid
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from clinic_core.appointments.models import Appointment, AppointmentStatus, VisitType
from clinic_core.clinics.models import Clinic
from clinic_core.patients.models import Patient


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def clinic(db, tenant_id):
    return Clinic.objects.create(
        tenant_id=tenant_id,
        code="main",
        name="Main Clinic",
        phone="0422-000000",
        address_line1="12 Race Course Road",
        city="Coimbatore",
        gstin="33AAAAA0000A1Z5",
    )


@pytest.fixture
def other_clinic(db, tenant_id):
    return Clinic.objects.create(tenant_id=tenant_id, code="branch", name="Branch Clinic")


@pytest.fixture
def user(db):
    User = get_user_model()
    return User.objects.create_user(username="frontdesk", password="testpass", is_active=True)


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def patient(db, clinic):
    return Patient.objects.create(
        tenant_id=clinic.tenant_id,
        clinic_id=clinic.id,
        full_name="Anita Raman",
        phone="9876543210",
        email="anita@example.com",
        uhid="UHID-0001",
    )


@pytest.fixture
def make_visit(db, clinic, patient):
    def _make(
        *,
        fee="500.00",
        visit_type=VisitType.APPOINTMENT,
        status=AppointmentStatus.COMPLETED,
        on=None,
        for_patient=None,
    ):
        return Appointment.objects.create(
            tenant_id=clinic.tenant_id,
            clinic_id=clinic.id,
            patient=for_patient or patient,
            visit_type=visit_type,
            status=status,
            appointment_date=on or timezone.localdate(),
            doctor_id=uuid.uuid4(),
            doctor_name="Dr. Kumar",
            consultation_fee=Decimal(fee),
        )

    return _make


@pytest.fixture
def appointment(make_visit):
    """A completed appointment with a 500.00 consultation fee."""
    return make_visit()
