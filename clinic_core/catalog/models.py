# clinic_core/catalog/models.py
from __future__ import annotations

from decimal import Decimal

from django.db import models

from clinic_core.common.models import ScopedModel


class ServiceCatalogItem(ScopedModel):
    """
    Clinic price list.
    One record per tenant+clinic+code.
    """
    code = models.SlugField(max_length=64)
    name = models.CharField(max_length=255)

    default_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_service_item"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "clinic_id", "code"],
                name="uq_catalog_item_scope_code",
            )
        ]
        indexes = [
            models.Index(fields=["tenant_id", "clinic_id", "is_active"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.default_price})"
