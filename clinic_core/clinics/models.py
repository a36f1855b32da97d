# clinic_core/clinics/models.py
from __future__ import annotations

import uuid

from django.db import models


class Clinic(models.Model):
    """
    A branch/clinic under a tenant.

    Billing only reads it for receipt headers; its `id` is the `clinic_id`
    every scoped row carries.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(db_index=True)

    # Core identity
    name = models.CharField(max_length=255)
    code = models.SlugField(max_length=64)  # unique per tenant

    # Contact (optional)
    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")

    # Address (optional)
    address_line1 = models.CharField(max_length=255, blank=True, default="")
    address_line2 = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=128, blank=True, default="")
    state = models.CharField(max_length=128, blank=True, default="")
    pincode = models.CharField(max_length=16, blank=True, default="")

    # Regulatory / billing identifiers (optional)
    registration_number = models.CharField(max_length=64, blank=True, default="")
    gstin = models.CharField(max_length=32, blank=True, default="")

    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "clinics_clinic"
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "code"], name="uq_clinic_tenant_code"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def address(self) -> str:
        parts = [self.address_line1, self.address_line2, self.city, self.state, self.pincode]
        return ", ".join(p for p in parts if p)
