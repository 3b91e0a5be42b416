from rest_framework import serializers

from apps.billing.models import Payment, PaymentMethod
from apps.billing.queries import ASCENDING, SORT_DIRECTIONS, SORT_KEYS, STATUS_FILTERS
from apps.common.money import format_cents


class PaymentSerializer(serializers.ModelSerializer):
    sale_id = serializers.CharField(read_only=True)
    client_name = serializers.CharField(source="sale.client_name", read_only=True)
    total_installments = serializers.IntegerField(source="sale.installment_count", read_only=True)
    amount = serializers.SerializerMethodField()
    date = serializers.DateField(source="payment_date", read_only=True)
    derived_status = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "sale_id",
            "client_name",
            "amount_cents",
            "amount",
            "method",
            "date",
            "installment_number",
            "total_installments",
            "notes",
            "status",
            "derived_status",
            "processed_at",
            "cancelled_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_amount(self, obj):
        return format_cents(obj.amount_cents)

    def get_derived_status(self, obj):
        derived = getattr(obj, "derived_status", None)
        return str(derived) if derived is not None else None


class PaymentCreateSerializer(serializers.Serializer):
    sale_id = serializers.CharField(max_length=32)
    installment_number = serializers.IntegerField(min_value=1, required=False)
    amount_cents = serializers.IntegerField(min_value=1, required=False)
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    payment_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class PaymentProcessSerializer(serializers.Serializer):
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    payment_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class PaymentQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(choices=[str(value) for value in STATUS_FILTERS], required=False, default="all")
    ordering = serializers.ChoiceField(choices=sorted(SORT_KEYS), required=False)
    direction = serializers.ChoiceField(choices=list(SORT_DIRECTIONS), required=False, default=ASCENDING)
    sale = serializers.CharField(required=False)
    as_of = serializers.DateField(required=False)


class InstallmentPlanRequestSerializer(serializers.Serializer):
    total_cents = serializers.IntegerField()
    installment_count = serializers.IntegerField()
    initial_amount_cents = serializers.IntegerField()
    initial_date = serializers.DateField()


class InstallmentSlotSerializer(serializers.Serializer):
    number = serializers.IntegerField()
    due_date = serializers.DateField()
    amount_cents = serializers.IntegerField()
    amount = serializers.SerializerMethodField()

    def get_amount(self, obj):
        return format_cents(obj.amount_cents)


class ScheduleEntrySerializer(serializers.Serializer):
    number = serializers.IntegerField()
    due_date = serializers.DateField()
    amount_cents = serializers.IntegerField()
    amount = serializers.SerializerMethodField()
    payment_id = serializers.SerializerMethodField()
    payment_status = serializers.SerializerMethodField()
    status = serializers.CharField()

    def get_amount(self, obj):
        return format_cents(obj["amount_cents"])

    def get_payment_id(self, obj):
        payment = obj["payment"]
        return str(payment.id) if payment else None

    def get_payment_status(self, obj):
        payment = obj["payment"]
        return payment.status if payment else None
