# clinic_core/appointments/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from clinic_core.appointments.models import Appointment, AppointmentStatus


def get_appointment(*, tenant_id: UUID, clinic_id: UUID, appointment_id: UUID) -> Appointment | None:
    return (
        Appointment.objects.select_related("patient")
        .filter(id=appointment_id, tenant_id=tenant_id, clinic_id=clinic_id)
        .first()
    )


def completed_visits_qs(*, tenant_id: UUID, clinic_id: UUID) -> QuerySet[Appointment]:
    return Appointment.objects.select_related("patient").filter(
        tenant_id=tenant_id,
        clinic_id=clinic_id,
        status=AppointmentStatus.COMPLETED,
    )
