# clinic_core/billing/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from clinic_core.billing.api.serializers import (
    BillCreateSerializer,
    BillDeleteQuerySerializer,
    BillFromVisitSerializer,
    BillingSummarySerializer,
    BillListSerializer,
    BillPaymentSerializer,
    BillSerializer,
    BillStatusSerializer,
    BillUpdateSerializer,
    CatalogItemSerializer,
    DateRangeQuerySerializer,
    UnbilledVisitSerializer,
)
from clinic_core.billing.drafts import BillDraft
from clinic_core.billing.exceptions import storage_errors
from clinic_core.billing.filters import BillFilter
from clinic_core.billing.models import Bill, BillSource
from clinic_core.billing.selectors import billing_summary, list_billed, list_pending, list_unbilled
from clinic_core.billing.services import BillLedger, PaymentRecorder, VisitToBillConverter, build_line_items
from clinic_core.billing.snapshots import build_bill_snapshot
from clinic_core.catalog.selectors import active_catalog_items
from clinic_core.clinics.selectors import get_clinic
from clinic_core.common.scope import require_scope

PAGE_PARAMS = [
    OpenApiParameter(name="page", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="limit", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
]

DATE_PARAMS = [
    OpenApiParameter(name="start_date", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="end_date", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
]

SEARCH_PARAM = OpenApiParameter(
    name="search",
    type=OpenApiTypes.STR,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Patient name / UHID / phone (and bill number for bill lists).",
)

ORDERING_PARAM = OpenApiParameter(
    name="ordering",
    type=OpenApiTypes.STR,
    location=OpenApiParameter.QUERY,
    required=False,
    description="bill_date, total_amount or created_at; prefix with - for descending.",
)


def _query(serializer_class, request) -> dict:
    ser = serializer_class(data=request.query_params)
    ser.is_valid(raise_exception=True)
    return {k: v for k, v in ser.validated_data.items() if v not in (None, "")}


def _bill_filters(request, keys=None) -> dict:
    allowed = keys or BillFilter.base_filters
    return {k: v for k, v in request.query_params.items() if k in allowed}


def _page_params(request) -> dict:
    return {"page": request.query_params.get("page"), "limit": request.query_params.get("limit")}


def _user_id(request) -> int | None:
    user = getattr(request, "user", None)
    return user.id if user is not None and user.is_authenticated else None


class BillViewSet(viewsets.GenericViewSet):
    """
    Billing & payment ledger:
    - list billed / pending / unbilled visits, summary counters
    - create (staff-entered or from a completed visit), retrieve, update, delete
    - status edits and payment recording
    - snapshot for receipt composers
    """
    serializer_class = BillSerializer
    queryset = Bill.objects.none()
    lookup_value_regex = r"[0-9a-fA-F-]{36}"

    # -------------------------
    # Read side
    # -------------------------
    @extend_schema(
        tags=["Billing"],
        responses={200: BillListSerializer(many=True)},
        parameters=[
            *PAGE_PARAMS,
            *DATE_PARAMS,
            SEARCH_PARAM,
            ORDERING_PARAM,
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="payment_status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="payment_method", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="service",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Bills with any line item whose name contains this text.",
            ),
        ],
    )
    def list(self, request):
        scope = require_scope(request)

        result = list_billed(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            **_page_params(request),
            **_bill_filters(request),
        )
        return Response(result.as_dict(lambda rows: BillListSerializer(rows, many=True).data))

    @extend_schema(
        tags=["Billing"],
        responses={200: BillListSerializer(many=True)},
        parameters=[*PAGE_PARAMS, *DATE_PARAMS, SEARCH_PARAM, ORDERING_PARAM],
    )
    @action(detail=False, methods=["get"], url_path="pending")
    def pending(self, request):
        scope = require_scope(request)

        result = list_pending(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            **_page_params(request),
            **_bill_filters(request, keys=("start_date", "end_date", "search", "ordering")),
        )
        return Response(result.as_dict(lambda rows: BillListSerializer(rows, many=True).data))

    @extend_schema(
        tags=["Billing"],
        responses={200: UnbilledVisitSerializer(many=True)},
        parameters=[*PAGE_PARAMS, *DATE_PARAMS, SEARCH_PARAM],
    )
    @action(detail=False, methods=["get"], url_path="unbilled-visits")
    def unbilled_visits(self, request):
        scope = require_scope(request)

        result = list_unbilled(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            **_page_params(request),
            **_query(DateRangeQuerySerializer, request),
        )
        return Response(result.as_dict(lambda rows: UnbilledVisitSerializer(rows, many=True).data))

    @extend_schema(
        tags=["Billing"],
        responses={200: BillingSummarySerializer},
        parameters=DATE_PARAMS,
    )
    @action(detail=False, methods=["get"], url_path="summary")
    def summary(self, request):
        scope = require_scope(request)

        dates = _query(DateRangeQuerySerializer, request)
        data = billing_summary(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            start_date=dates.get("start_date"),
            end_date=dates.get("end_date"),
        )
        return Response(BillingSummarySerializer(data).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        responses={200: CatalogItemSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="services")
    def services(self, request):
        scope = require_scope(request)

        with storage_errors("listing services"):
            rows = list(active_catalog_items(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id))
        return Response(CatalogItemSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        responses={200: BillSerializer},
    )
    def retrieve(self, request, pk=None):
        scope = require_scope(request)

        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=UUID(str(pk)))
        return Response(BillSerializer(bill).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        responses={200: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=["get"], url_path="snapshot")
    def snapshot(self, request, pk=None):
        scope = require_scope(request)

        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=UUID(str(pk)))
        with storage_errors("loading clinic"):
            clinic = get_clinic(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id)
        return Response(build_bill_snapshot(bill, clinic), status=status.HTTP_200_OK)

    # -------------------------
    # Write side
    # -------------------------
    @extend_schema(
        tags=["Billing"],
        request=BillCreateSerializer,
        responses={201: BillSerializer, 409: OpenApiTypes.OBJECT},
    )
    def create(self, request):
        scope = require_scope(request)

        ser = BillCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        items = build_line_items(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, raw_items=data["items"])

        source = {"source_type": BillSource.MANUAL}
        if data.get("appointment"):
            visit = VisitToBillConverter.resolve_visit(
                tenant_id=scope.tenant_id,
                clinic_id=scope.clinic_id,
                appointment_id=data["appointment"],
            )
            if visit.patient_id != data["patient"]:
                raise ValidationError({"appointment": "Appointment belongs to a different patient."})
            source = VisitToBillConverter.source_fields(visit)

        draft = BillDraft(
            patient_id=data["patient"],
            items=items,
            tax_percent=data["tax_percent"],
            overall_discount=data["overall_discount"],
            **source,
            doctor_id=data.get("doctor_id"),
            template_id=data.get("template_id"),
            payment_method=data["payment_method"],
            payment_reference=data.get("payment_reference", ""),
            amount_paid=data["amount_paid"],
            bill_date=data.get("bill_date"),
            due_date=data.get("due_date"),
            notes=data.get("notes", ""),
        )

        bill = BillLedger.create(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            draft=draft,
            created_by_user_id=_user_id(request),
        )
        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=bill.id)
        return Response(BillSerializer(bill).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Billing"],
        request=BillFromVisitSerializer,
        responses={201: BillSerializer, 409: OpenApiTypes.OBJECT},
    )
    @action(detail=False, methods=["post"], url_path="from-visit")
    def from_visit(self, request):
        scope = require_scope(request)

        ser = BillFromVisitSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        visit = VisitToBillConverter.resolve_visit(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            appointment_id=data["appointment"],
        )
        draft = VisitToBillConverter.to_draft(
            visit,
            items=build_line_items(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, raw_items=data["items"]),
            tax_percent=data["tax_percent"],
            overall_discount=data["overall_discount"],
            payment_method=data["payment_method"],
            template_id=data.get("template_id"),
            notes=data.get("notes", ""),
        )

        bill = BillLedger.create(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            draft=draft,
            created_by_user_id=_user_id(request),
        )
        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=bill.id)
        return Response(BillSerializer(bill).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Billing"],
        request=BillUpdateSerializer,
        responses={200: BillSerializer},
    )
    def update(self, request, pk=None):
        scope = require_scope(request)

        ser = BillUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        changes = dict(ser.validated_data)

        if "items" in changes:
            changes["items"] = build_line_items(
                tenant_id=scope.tenant_id,
                clinic_id=scope.clinic_id,
                raw_items=changes["items"],
            )

        bill = BillLedger.update(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            bill_id=UUID(str(pk)),
            **changes,
        )
        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=bill.id)
        return Response(BillSerializer(bill).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        request=BillStatusSerializer,
        responses={200: BillSerializer},
    )
    @action(detail=True, methods=["patch"], url_path="status")
    def set_status(self, request, pk=None):
        scope = require_scope(request)

        ser = BillStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        bill = PaymentRecorder.set_status(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            bill_id=UUID(str(pk)),
            status=data["payment_status"],
            amount_paid=data.get("amount_paid"),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
        )
        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=bill.id)
        return Response(BillSerializer(bill).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        request=BillPaymentSerializer,
        responses={200: BillSerializer},
    )
    @action(detail=True, methods=["patch"], url_path="payment")
    def payment(self, request, pk=None):
        scope = require_scope(request)

        ser = BillPaymentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        bill = PaymentRecorder.record_payment(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            bill_id=UUID(str(pk)),
            amount=data["amount"],
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
        )
        bill = BillLedger.get(tenant_id=scope.tenant_id, clinic_id=scope.clinic_id, bill_id=bill.id)
        return Response(BillSerializer(bill).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        responses={204: None, 409: OpenApiTypes.OBJECT},
        parameters=[
            OpenApiParameter(
                name="override",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Administrative override: allow deleting partial/paid bills.",
            ),
            OpenApiParameter(name="reason", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def destroy(self, request, pk=None):
        scope = require_scope(request)

        params = _query(BillDeleteQuerySerializer, request)
        BillLedger.delete(
            tenant_id=scope.tenant_id,
            clinic_id=scope.clinic_id,
            bill_id=UUID(str(pk)),
            override=params.get("override", False),
            reason=params.get("reason", ""),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
