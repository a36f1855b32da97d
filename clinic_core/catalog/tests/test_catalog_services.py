# clinic_core/catalog/tests/test_catalog_services.py
from decimal import Decimal

import pytest
from django.core.management import call_command
from rest_framework.exceptions import ValidationError

from clinic_core.billing.services import build_line_items
from clinic_core.catalog.models import ServiceCatalogItem
from clinic_core.catalog.selectors import active_catalog_items, get_active_catalog_item
from clinic_core.catalog.services import DEFAULT_SERVICES, CatalogService


@pytest.mark.django_db
def test_ensure_defaults_is_idempotent(clinic):
    created = CatalogService.ensure_defaults(tenant_id=clinic.tenant_id, clinic_id=clinic.id)
    assert created == len(DEFAULT_SERVICES)

    assert CatalogService.ensure_defaults(tenant_id=clinic.tenant_id, clinic_id=clinic.id) == 0
    assert active_catalog_items(tenant_id=clinic.tenant_id, clinic_id=clinic.id).count() == len(DEFAULT_SERVICES)


@pytest.mark.django_db
def test_upsert_updates_price_and_deactivates(clinic):
    scope = {"tenant_id": clinic.tenant_id, "clinic_id": clinic.id}
    CatalogService.upsert(**scope, code="ecg", name="ECG", default_price="400")
    CatalogService.upsert(**scope, code="ecg", name="ECG", default_price="450.5")

    item = get_active_catalog_item(**scope, code="ecg")
    assert item.default_price == Decimal("450.50")

    CatalogService.upsert(**scope, code="ecg", name="ECG", default_price="450.5", is_active=False)
    assert get_active_catalog_item(**scope, code="ecg") is None

    with pytest.raises(ValidationError):
        CatalogService.upsert(**scope, code="ecg", name="ECG", default_price="-1")


@pytest.mark.django_db
def test_line_items_take_catalog_defaults_unless_overridden(clinic):
    scope = {"tenant_id": clinic.tenant_id, "clinic_id": clinic.id}
    CatalogService.ensure_defaults(**scope)

    items = build_line_items(
        **scope,
        raw_items=[
            {"service_code": "x-ray", "quantity": 2},
            {"service_code": "ecg", "service_name": "ECG (12 lead)", "unit_price": Decimal("350")},
            {"service_name": "Dressing", "unit_price": Decimal("120")},
        ],
    )

    assert [(i.service_name, i.unit_price) for i in items] == [
        ("X-Ray", Decimal("800.00")),
        ("ECG (12 lead)", Decimal("350")),
        ("Dressing", Decimal("120")),
    ]
    assert items[0].quantity == 2

    with pytest.raises(ValidationError):
        build_line_items(**scope, raw_items=[{"service_code": "mri"}])


@pytest.mark.django_db
def test_seed_command_fills_every_active_clinic(clinic, other_clinic):
    call_command("seed_service_catalog")

    assert ServiceCatalogItem.objects.filter(clinic_id=clinic.id).count() == len(DEFAULT_SERVICES)
    assert ServiceCatalogItem.objects.filter(clinic_id=other_clinic.id).count() == len(DEFAULT_SERVICES)
