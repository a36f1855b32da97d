# clinic_core/catalog/services.py
from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from django.utils.text import slugify
from rest_framework.exceptions import ValidationError

from clinic_core.billing.money import to_money
from clinic_core.catalog.models import ServiceCatalogItem

# Starter price list offered to a new clinic.
DEFAULT_SERVICES = [
    ("Consultation", Decimal("500.00")),
    ("Follow-up", Decimal("300.00")),
    ("Lab Test", Decimal("200.00")),
    ("X-Ray", Decimal("800.00")),
    ("ECG", Decimal("400.00")),
    ("Ultrasound", Decimal("1200.00")),
    ("Blood Test", Decimal("300.00")),
    ("Vaccination", Decimal("600.00")),
    ("Injection", Decimal("150.00")),
]


class CatalogService:
    @staticmethod
    def upsert(
        *,
        tenant_id: UUID,
        clinic_id: UUID,
        code: str,
        name: str,
        default_price,
        is_active: bool = True,
    ) -> ServiceCatalogItem:
        code = (code or "").strip()
        if not code:
            raise ValidationError({"code": "Code is required."})

        obj, _ = ServiceCatalogItem.objects.update_or_create(
            tenant_id=tenant_id,
            clinic_id=clinic_id,
            code=code,
            defaults={
                "name": name,
                "default_price": to_money(default_price, "default_price"),
                "is_active": is_active,
            },
        )
        return obj

    @staticmethod
    def ensure_defaults(*, tenant_id: UUID, clinic_id: UUID) -> int:
        """Create missing starter services; existing codes are left untouched. Returns number created."""
        created = 0
        for name, price in DEFAULT_SERVICES:
            _, was_created = ServiceCatalogItem.objects.get_or_create(
                tenant_id=tenant_id,
                clinic_id=clinic_id,
                code=slugify(name),
                defaults={"name": name, "default_price": price},
            )
            created += 1 if was_created else 0
        return created
