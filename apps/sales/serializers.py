from django.utils import timezone
from rest_framework import serializers

from apps.billing.models import PaymentMethod, PaymentStatus
from apps.common.money import format_cents
from apps.sales.models import Client, Sale


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ["id", "name", "phone", "phone_normalized", "email", "notes", "created_at", "updated_at"]
        read_only_fields = ["id", "phone_normalized", "created_at", "updated_at"]

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("name is required")
        return value


class InitialPaymentSerializer(serializers.Serializer):
    amount_cents = serializers.IntegerField(min_value=1)
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    payment_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")

    def validate(self, attrs):
        attrs.setdefault("payment_date", timezone.localdate())
        return attrs


class SaleSerializer(serializers.ModelSerializer):
    total = serializers.SerializerMethodField()
    paid_cents = serializers.SerializerMethodField()

    class Meta:
        model = Sale
        fields = [
            "id",
            "client",
            "client_name",
            "description",
            "total_cents",
            "total",
            "installment_count",
            "paid_cents",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields

    def get_total(self, obj):
        return format_cents(obj.total_cents)

    def get_paid_cents(self, obj):
        if not obj.installment_count:
            return obj.total_cents
        return sum(payment.amount_cents for payment in obj.payments.all() if payment.status == PaymentStatus.COMPLETED)


class SaleCreateSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_blank=True, max_length=32)
    client = serializers.PrimaryKeyRelatedField(queryset=Client.objects.all())
    description = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")
    total_cents = serializers.IntegerField()
    installment_count = serializers.IntegerField()
    initial_payment = InitialPaymentSerializer(required=False)
