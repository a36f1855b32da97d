# clinic_core/patients/models.py
from django.db import models

from clinic_core.common.models import ScopedModel


class Patient(ScopedModel):
    """
    Patient record scoped to tenant+clinic.
    Owned by the records module; billing only reads it.
    """
    full_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=32, blank=True)

    # clinic-local unique health id shown on receipts
    uhid = models.CharField(max_length=64)

    class Meta:
        db_table = "patients_patient"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "clinic_id", "uhid"],
                name="uq_patient_scope_uhid",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "clinic_id", "full_name"]),
            models.Index(fields=["tenant_id", "clinic_id", "phone"]),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.uhid})"
