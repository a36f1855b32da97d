# clinic_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Q, QuerySet

from clinic_core.patients.models import Patient


def get_patient(*, tenant_id: UUID, clinic_id: UUID, patient_id: UUID) -> Patient | None:
    return Patient.objects.filter(id=patient_id, tenant_id=tenant_id, clinic_id=clinic_id).first()


def patient_search_q(q: str, *, prefix: str = "") -> Q:
    """
    Free-text match on name / UHID / phone.
    `prefix` lets other apps reuse it across a relation (e.g. "patient__").
    """
    return (
        Q(**{f"{prefix}full_name__icontains": q})
        | Q(**{f"{prefix}uhid__icontains": q})
        | Q(**{f"{prefix}phone__icontains": q})
    )


def search_patients(
    *,
    tenant_id: UUID,
    clinic_id: UUID,
    q: str | None = None,
) -> QuerySet[Patient]:
    qs = Patient.objects.filter(tenant_id=tenant_id, clinic_id=clinic_id)

    qv = (q or "").strip()
    if qv:
        qs = qs.filter(patient_search_q(qv))

    return qs.order_by("-created_at")
