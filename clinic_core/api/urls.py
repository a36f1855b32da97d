# clinic_core/api/urls.py
from __future__ import annotations

from rest_framework.routers import DefaultRouter

from clinic_core.billing.api.views import BillViewSet

router = DefaultRouter()

router.register(r"bills", BillViewSet, basename="bills")

urlpatterns = [
    *router.urls,
]
