from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from clinic_core.catalog.models import ServiceCatalogItem


def get_active_catalog_item(*, tenant_id: UUID, clinic_id: UUID, code: str) -> ServiceCatalogItem | None:
    return (
        ServiceCatalogItem.objects.filter(
            tenant_id=tenant_id,
            clinic_id=clinic_id,
            code=code,
            is_active=True,
        )
        .order_by("-created_at")
        .first()
    )


def active_catalog_items(*, tenant_id: UUID, clinic_id: UUID) -> QuerySet[ServiceCatalogItem]:
    return ServiceCatalogItem.objects.filter(tenant_id=tenant_id, clinic_id=clinic_id, is_active=True).order_by("name")
