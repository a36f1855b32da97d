# clinic_core/billing/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from clinic_core.billing.models import Bill, BillItem, PaymentMethod, PaymentStatus
from clinic_core.catalog.models import ServiceCatalogItem


class BillItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillItem
        fields = [
            "id",
            "sort_order",
            "service_code",
            "service_name",
            "quantity",
            "days",
            "unit_price",
            "discount",
            "line_total",
        ]
        read_only_fields = fields


class BillListSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)
    patient_uhid = serializers.CharField(source="patient.uhid", read_only=True)
    patient_phone = serializers.CharField(source="patient.phone", read_only=True)
    services = serializers.SerializerMethodField()

    class Meta:
        model = Bill
        fields = [
            "id",
            "bill_number",
            "bill_date",
            "patient",
            "patient_name",
            "patient_uhid",
            "patient_phone",
            "appointment_id",
            "source_type",
            "services",
            "total_amount",
            "amount_paid",
            "balance_due",
            "payment_method",
            "payment_status",
            "created_at",
        ]
        read_only_fields = fields

    def get_services(self, obj: Bill) -> list[str]:
        return [item.service_name for item in obj.items.all()]


class BillSerializer(serializers.ModelSerializer):
    items = BillItemSerializer(many=True, read_only=True)
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)
    patient_uhid = serializers.CharField(source="patient.uhid", read_only=True)
    patient_phone = serializers.CharField(source="patient.phone", read_only=True)

    class Meta:
        model = Bill
        fields = [
            "id",
            "tenant_id",
            "clinic_id",
            "bill_number",
            "patient",
            "patient_name",
            "patient_uhid",
            "patient_phone",
            "appointment_id",
            "source_type",
            "source_id",
            "doctor_id",
            "template_id",
            "bill_date",
            "due_date",
            "items",
            "tax_percent",
            "overall_discount",
            "subtotal",
            "tax_amount",
            "total_amount",
            "amount_paid",
            "balance_due",
            "payment_method",
            "payment_reference",
            "payment_status",
            "paid_at",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class LineItemInputSerializer(serializers.Serializer):
    """
    One requested line item.

    service_code alone pulls name and default price from the clinic catalog.
    """
    service_code = serializers.CharField(required=False, allow_blank=True, default="")
    service_name = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    quantity = serializers.IntegerField(required=False, default=1, min_value=1)
    days = serializers.IntegerField(required=False, default=1, min_value=1)
    unit_price = serializers.DecimalField(
        required=False, allow_null=True, default=None, max_digits=12, decimal_places=2, min_value=Decimal("0.00")
    )
    discount = serializers.DecimalField(
        required=False, default=Decimal("0.00"), max_digits=12, decimal_places=2, min_value=Decimal("0.00")
    )

    def validate(self, attrs):
        if not attrs.get("service_code") and not (attrs.get("service_name") or "").strip():
            raise serializers.ValidationError({"service_name": "Service name is required."})
        return attrs


class _BillOptionsSerializer(serializers.Serializer):
    tax_percent = serializers.DecimalField(
        required=False,
        default=Decimal("0.00"),
        max_digits=5,
        decimal_places=2,
        min_value=Decimal("0.00"),
        max_value=Decimal("100.00"),
    )
    overall_discount = serializers.DecimalField(
        required=False, default=Decimal("0.00"), max_digits=12, decimal_places=2, min_value=Decimal("0.00")
    )
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH)
    template_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class BillCreateSerializer(_BillOptionsSerializer):
    """
    Staff-entered bill. When appointment is given the bill is tied to that
    visit and the one-bill-per-appointment rule applies.
    """
    patient = serializers.UUIDField()
    appointment = serializers.UUIDField(required=False, allow_null=True, default=None)
    doctor_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    items = LineItemInputSerializer(many=True, allow_empty=False)
    payment_reference = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    amount_paid = serializers.DecimalField(
        required=False, default=Decimal("0.00"), max_digits=12, decimal_places=2, min_value=Decimal("0.00")
    )
    bill_date = serializers.DateField(required=False, allow_null=True, default=None)
    due_date = serializers.DateField(required=False, allow_null=True, default=None)


class BillFromVisitSerializer(_BillOptionsSerializer):
    appointment = serializers.UUIDField()
    items = LineItemInputSerializer(many=True, required=False, default=list)


class BillUpdateSerializer(serializers.Serializer):
    """
    All fields optional; only what is sent is changed.
    """
    items = LineItemInputSerializer(many=True, required=False, allow_empty=False)
    tax_percent = serializers.DecimalField(
        required=False, max_digits=5, decimal_places=2, min_value=Decimal("0.00"), max_value=Decimal("100.00")
    )
    overall_discount = serializers.DecimalField(
        required=False, max_digits=12, decimal_places=2, min_value=Decimal("0.00")
    )
    amount_paid = serializers.DecimalField(required=False, max_digits=12, decimal_places=2, min_value=Decimal("0.00"))
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)
    payment_reference = serializers.CharField(required=False, allow_blank=True, max_length=64)
    notes = serializers.CharField(required=False, allow_blank=True)
    template_id = serializers.UUIDField(required=False, allow_null=True)
    doctor_id = serializers.UUIDField(required=False, allow_null=True)
    bill_date = serializers.DateField(required=False)
    due_date = serializers.DateField(required=False, allow_null=True)


class BillStatusSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)
    amount_paid = serializers.DecimalField(
        required=False, allow_null=True, default=None, max_digits=12, decimal_places=2, min_value=Decimal("0.00")
    )
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, allow_null=True, default=None)
    payment_reference = serializers.CharField(
        required=False, allow_null=True, allow_blank=True, default=None, max_length=64
    )


class BillPaymentSerializer(serializers.Serializer):
    # Positivity is checked by the recorder so the message is the same for API and service callers.
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, allow_null=True, default=None)
    payment_reference = serializers.CharField(
        required=False, allow_null=True, allow_blank=True, default=None, max_length=64
    )


class BillDeleteQuerySerializer(serializers.Serializer):
    override = serializers.BooleanField(required=False, default=False)
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)


class DateRangeQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    search = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError({"end_date": "end_date must be on or after start_date."})
        return attrs


class UnbilledVisitSerializer(serializers.Serializer):
    source_id = serializers.UUIDField()
    source_type = serializers.CharField()
    patient_id = serializers.UUIDField()
    patient_name = serializers.CharField()
    patient_uhid = serializers.CharField()
    patient_phone = serializers.CharField()
    consultation_fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    doctor_id = serializers.UUIDField(allow_null=True)
    doctor_name = serializers.CharField()
    appointment_date = serializers.DateField()


class BillingSummarySerializer(serializers.Serializer):
    total_bills = serializers.IntegerField()
    unbilled_count = serializers.IntegerField()
    pending_count = serializers.IntegerField()
    partial_count = serializers.IntegerField()
    paid_count = serializers.IntegerField()
    paid_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_collected = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_outstanding = serializers.DecimalField(max_digits=14, decimal_places=2)


class CatalogItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = ServiceCatalogItem
        fields = ["id", "code", "name", "default_price"]
        read_only_fields = fields
