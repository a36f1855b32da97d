# clinic_core/billing/tests/test_bills_api.py
from decimal import Decimal

import pytest
from django.db import OperationalError
from rest_framework.test import APIClient

from clinic_core.appointments.models import AppointmentStatus, VisitType
from clinic_core.billing import services
from clinic_core.billing.models import Bill
from clinic_core.catalog.services import CatalogService
from clinic_core.tests.helpers import scoped

BILLS = "/api/v1/bills/"


def _bill_visit(api_client, headers, appointment, **extra):
    return api_client.post(
        f"{BILLS}from-visit/",
        {"appointment": str(appointment.id), **extra},
        format="json",
        **headers,
    )


@pytest.mark.django_db
def test_bill_visit_then_pay_in_two_steps(api_client, clinic, appointment):
    headers = scoped(clinic)

    resp = _bill_visit(api_client, headers, appointment)
    assert resp.status_code == 201
    assert resp.data["total_amount"] == "500.00"
    assert resp.data["payment_status"] == "pending"
    assert resp.data["appointment_id"] == str(appointment.id)
    assert resp.data["items"][0]["service_name"] == "Consultation"
    bill_id = resp.data["id"]

    resp = api_client.patch(f"{BILLS}{bill_id}/payment/", {"amount": "200"}, format="json", **headers)
    assert resp.status_code == 200
    assert resp.data["amount_paid"] == "200.00"
    assert resp.data["payment_status"] == "partial"

    resp = api_client.patch(
        f"{BILLS}{bill_id}/payment/",
        {"amount": "300", "payment_method": "upi", "payment_reference": "UTR-9"},
        format="json",
        **headers,
    )
    assert resp.status_code == 200
    assert resp.data["payment_status"] == "paid"
    assert resp.data["balance_due"] == "0.00"
    assert resp.data["payment_reference"] == "UTR-9"

    resp = api_client.patch(f"{BILLS}{bill_id}/payment/", {"amount": "1"}, format="json", **headers)
    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"


@pytest.mark.django_db
def test_duplicate_visit_bill_returns_409_with_existing_id(api_client, clinic, appointment):
    headers = scoped(clinic)

    first = _bill_visit(api_client, headers, appointment)
    assert first.status_code == 201

    resp = _bill_visit(api_client, headers, appointment)
    assert resp.status_code == 409

    err = resp.data["error"]
    assert err["code"] == "duplicate_bill"
    assert err["details"]["existing_bill_id"] == first.data["id"]
    assert err["request_id"]
    assert Bill.objects.filter(appointment_id=appointment.id).count() == 1


@pytest.mark.django_db
def test_create_staff_bill_with_catalog_codes(api_client, clinic, patient):
    headers = scoped(clinic)
    CatalogService.ensure_defaults(tenant_id=clinic.tenant_id, clinic_id=clinic.id)

    resp = api_client.post(
        BILLS,
        {
            "patient": str(patient.id),
            "items": [
                {"service_code": "consultation"},
                {"service_code": "lab-test", "unit_price": "800.00"},
            ],
            "tax_percent": "5",
            "overall_discount": "50",
        },
        format="json",
        **headers,
    )

    assert resp.status_code == 201
    assert [i["service_name"] for i in resp.data["items"]] == ["Consultation", "Lab Test"]
    assert resp.data["subtotal"] == "1300.00"
    assert resp.data["tax_amount"] == "65.00"
    assert resp.data["total_amount"] == "1315.00"
    assert resp.data["bill_number"] == "BILL-000001"
    assert resp.data["source_type"] == "manual"


@pytest.mark.django_db
def test_create_rejects_unknown_service_code_and_bad_tax(api_client, clinic, patient):
    headers = scoped(clinic)

    resp = api_client.post(
        BILLS,
        {"patient": str(patient.id), "items": [{"service_code": "mri"}]},
        format="json",
        **headers,
    )
    assert resp.status_code == 400

    resp = api_client.post(
        BILLS,
        {
            "patient": str(patient.id),
            "items": [{"service_name": "Consultation", "unit_price": "500"}],
            "tax_percent": "101",
        },
        format="json",
        **headers,
    )
    assert resp.status_code == 400
    assert "tax_percent" in resp.data["error"]["details"]
    assert Bill.objects.count() == 0


@pytest.mark.django_db
@pytest.mark.parametrize("visit_status", [AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED])
def test_staff_bill_for_unfinished_visit_is_409(api_client, clinic, patient, make_visit, visit_status):
    visit = make_visit(status=visit_status)

    resp = api_client.post(
        BILLS,
        {
            "patient": str(patient.id),
            "appointment": str(visit.id),
            "items": [{"service_name": "Consultation", "unit_price": "500"}],
        },
        format="json",
        **scoped(clinic),
    )

    assert resp.status_code == 409
    assert resp.data["error"]["code"] == "conflict"
    assert Bill.objects.count() == 0


@pytest.mark.django_db
def test_staff_bill_for_walk_in_is_keyed_on_the_visit(api_client, clinic, patient, make_visit):
    walk_in = make_visit(visit_type=VisitType.ADHOC)
    body = {
        "patient": str(patient.id),
        "appointment": str(walk_in.id),
        "items": [{"service_name": "Dressing", "unit_price": "150"}],
    }

    resp = api_client.post(BILLS, body, format="json", **scoped(clinic))

    assert resp.status_code == 201
    assert resp.data["source_type"] == "adhoc"
    assert resp.data["source_id"] == str(walk_in.id)
    assert resp.data["appointment_id"] is None

    again = api_client.post(BILLS, body, format="json", **scoped(clinic))
    assert again.status_code == 409
    assert again.data["error"]["code"] == "duplicate_bill"


@pytest.mark.django_db
def test_storage_outage_returns_503_envelope(api_client, clinic, appointment, monkeypatch):
    bill_id = _bill_visit(api_client, scoped(clinic), appointment).data["id"]

    def db_down(**kwargs):
        raise OperationalError("db down")

    monkeypatch.setattr(services, "get_bill", db_down)

    resp = api_client.get(f"{BILLS}{bill_id}/", **scoped(clinic))
    assert resp.status_code == 503
    assert resp.data["error"]["code"] == "storage_error"


@pytest.mark.django_db
def test_update_bill_recomputes_totals(api_client, clinic, appointment):
    headers = scoped(clinic)
    bill_id = _bill_visit(api_client, headers, appointment).data["id"]

    resp = api_client.put(
        f"{BILLS}{bill_id}/",
        {
            "items": [
                {"service_name": "Consultation", "unit_price": "500"},
                {"service_name": "Dressing", "unit_price": "150", "quantity": 2, "discount": "50"},
            ],
            "tax_percent": "10",
        },
        format="json",
        **headers,
    )

    assert resp.status_code == 200
    assert resp.data["subtotal"] == "750.00"
    assert resp.data["tax_amount"] == "75.00"
    assert resp.data["total_amount"] == "825.00"
    assert resp.data["items"][1]["line_total"] == "250.00"


@pytest.mark.django_db
def test_status_edit_marks_paid(api_client, clinic, appointment):
    headers = scoped(clinic)
    bill_id = _bill_visit(api_client, headers, appointment).data["id"]

    resp = api_client.patch(f"{BILLS}{bill_id}/status/", {"payment_status": "paid"}, format="json", **headers)

    assert resp.status_code == 200
    assert resp.data["amount_paid"] == "500.00"
    assert resp.data["payment_status"] == "paid"


@pytest.mark.django_db
def test_delete_pending_then_paid_needs_override(api_client, clinic, appointment, make_visit):
    headers = scoped(clinic)

    pending_id = _bill_visit(api_client, headers, appointment).data["id"]
    resp = api_client.delete(f"{BILLS}{pending_id}/", **headers)
    assert resp.status_code == 204

    paid_id = _bill_visit(api_client, headers, make_visit()).data["id"]
    api_client.patch(f"{BILLS}{paid_id}/status/", {"payment_status": "paid"}, format="json", **headers)

    resp = api_client.delete(f"{BILLS}{paid_id}/", **headers)
    assert resp.status_code == 409
    assert resp.data["error"]["code"] == "conflict"

    resp = api_client.delete(f"{BILLS}{paid_id}/?override=true&reason=refunded", **headers)
    assert resp.status_code == 204
    assert Bill.objects.get(id=paid_id).deleted_reason == "refunded"


@pytest.mark.django_db
def test_list_tabs_and_summary(api_client, clinic, appointment, make_visit):
    headers = scoped(clinic)

    paid_id = _bill_visit(api_client, headers, appointment).data["id"]
    api_client.patch(f"{BILLS}{paid_id}/payment/", {"amount": "500"}, format="json", **headers)
    pending_id = _bill_visit(api_client, headers, make_visit(fee="300.00")).data["id"]
    make_visit(fee="250.00")

    resp = api_client.get(BILLS, **headers)
    assert resp.status_code == 200
    assert resp.data["total"] == 1
    assert resp.data["items"][0]["id"] == paid_id
    assert resp.data["items"][0]["services"] == ["Consultation"]
    assert resp.data["page"] == 1
    assert resp.data["has_next"] is False

    resp = api_client.get(f"{BILLS}pending/", **headers)
    assert [row["id"] for row in resp.data["items"]] == [pending_id]

    resp = api_client.get(f"{BILLS}unbilled-visits/", **headers)
    assert resp.data["total"] == 1
    assert resp.data["items"][0]["consultation_fee"] == "250.00"

    resp = api_client.get(f"{BILLS}summary/", **headers)
    assert resp.status_code == 200
    assert resp.data["total_bills"] == 2
    assert resp.data["unbilled_count"] == 1
    assert resp.data["pending_count"] == 1
    assert resp.data["paid_count"] == 1
    assert Decimal(resp.data["paid_total"]) == Decimal("500.00")


@pytest.mark.django_db
def test_list_rejects_bad_paging_and_dates(api_client, clinic):
    headers = scoped(clinic)

    assert api_client.get(f"{BILLS}?page=0", **headers).status_code == 400
    assert api_client.get(f"{BILLS}?limit=abc", **headers).status_code == 400
    assert api_client.get(f"{BILLS}?start_date=2026-02-10&end_date=2026-02-01", **headers).status_code == 400


@pytest.mark.django_db
def test_snapshot_carries_clinic_and_patient(api_client, clinic, appointment):
    headers = scoped(clinic)
    bill_id = _bill_visit(api_client, headers, appointment).data["id"]

    resp = api_client.get(f"{BILLS}{bill_id}/snapshot/", **headers)

    assert resp.status_code == 200
    assert resp.data["clinic"]["name"] == "Main Clinic"
    assert resp.data["clinic"]["gstin"] == "33AAAAA0000A1Z5"
    assert resp.data["patient"]["uhid"] == "UHID-0001"
    assert resp.data["total_amount"] == "500.00"
    assert resp.data["currency"] == "INR"
    assert resp.data["items"][0]["line_total"] == "500.00"


@pytest.mark.django_db
def test_services_lists_active_catalog(api_client, clinic):
    CatalogService.ensure_defaults(tenant_id=clinic.tenant_id, clinic_id=clinic.id)

    resp = api_client.get(f"{BILLS}services/", **scoped(clinic))

    assert resp.status_code == 200
    names = [row["name"] for row in resp.data]
    assert "Consultation" in names
    assert names == sorted(names)


@pytest.mark.django_db
def test_missing_scope_returns_error_envelope(api_client):
    resp = api_client.get(BILLS)

    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"
    assert "Missing scope headers" in resp.data["error"]["message"]


@pytest.mark.django_db
def test_unknown_bill_is_404(api_client, clinic):
    resp = api_client.get(f"{BILLS}00000000-0000-0000-0000-000000000000/", **scoped(clinic))

    assert resp.status_code == 404
    assert resp.data["error"]["code"] == "not_found"


@pytest.mark.django_db
def test_anonymous_request_is_rejected(clinic):
    resp = APIClient().get(BILLS, **scoped(clinic))

    assert resp.status_code == 403
    assert resp.data["error"]["code"] == "not_authenticated"
