# clinic_core/catalog/management/commands/seed_service_catalog.py

from django.core.management.base import BaseCommand

from clinic_core.catalog.services import CatalogService
from clinic_core.clinics.models import Clinic


class Command(BaseCommand):
    help = "Ensure every active clinic has the starter service price list (idempotent)."

    def handle(self, *args, **options):
        created = 0
        for clinic in Clinic.objects.filter(is_active=True):
            created += CatalogService.ensure_defaults(tenant_id=clinic.tenant_id, clinic_id=clinic.id)

        self.stdout.write(self.style.SUCCESS(f"Service catalog ensured. Newly created: {created}"))
