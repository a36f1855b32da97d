from __future__ import annotations

from uuid import UUID

from clinic_core.clinics.models import Clinic


def get_clinic(*, tenant_id: UUID, clinic_id: UUID) -> Clinic | None:
    return Clinic.objects.filter(tenant_id=tenant_id, id=clinic_id).first()
