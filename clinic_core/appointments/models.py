# clinic_core/appointments/models.py
from __future__ import annotations

from decimal import Decimal

from django.db import models

from clinic_core.common.models import ScopedModel
from clinic_core.patients.models import Patient


class VisitType(models.TextChoices):
    APPOINTMENT = "appointment", "Appointment"
    ADHOC = "adhoc", "Walk-in"


class AppointmentStatus(models.TextChoices):
    SCHEDULED = "SCHEDULED", "Scheduled"
    CHECKED_IN = "CHECKED_IN", "Checked In"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    NO_SHOW = "NO_SHOW", "No Show"


class Appointment(ScopedModel):
    """
    A booked appointment or a walk-in (ad-hoc) encounter.

    Owned by the scheduling module. Billing reads completed visits to find
    what still needs a bill and never writes here.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="appointments")

    visit_type = models.CharField(max_length=16, choices=VisitType.choices, default=VisitType.APPOINTMENT)
    status = models.CharField(
        max_length=16,
        choices=AppointmentStatus.choices,
        default=AppointmentStatus.SCHEDULED,
        db_index=True,
    )

    appointment_date = models.DateField()
    doctor_id = models.UUIDField(null=True, blank=True)
    doctor_name = models.CharField(max_length=255, blank=True)

    consultation_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        db_table = "appointments_appointment"
        indexes = [
            models.Index(fields=["tenant_id", "clinic_id", "status", "appointment_date"]),
            models.Index(fields=["tenant_id", "clinic_id", "patient"]),
        ]

    def __str__(self) -> str:
        return f"Appointment({self.patient_id}, {self.appointment_date}, {self.status})"
