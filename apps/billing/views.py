from django.utils import timezone
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.billing.models import Payment, PaymentStatus
from apps.billing.planner import generate_plan
from apps.billing.queries import query, summarize
from apps.billing.registry import cancel_payment, process_payment, record_payment
from apps.billing.serializers import (
    InstallmentPlanRequestSerializer,
    InstallmentSlotSerializer,
    PaymentCreateSerializer,
    PaymentProcessSerializer,
    PaymentQuerySerializer,
    PaymentSerializer,
)
from apps.billing.status import resolve_status
from apps.common.permissions import RolePermission


class InstallmentPlanView(generics.GenericAPIView):
    serializer_class = InstallmentPlanRequestSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["sales.view"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        slots = generate_plan(**serializer.validated_data)
        return Response(
            {
                "slots": InstallmentSlotSerializer(slots, many=True).data,
                "total_cents": sum(slot.amount_cents for slot in slots),
            },
            status=200,
        )


class PaymentViewSet(viewsets.GenericViewSet):
    queryset = Payment.objects.select_related("sale").order_by("sale_id", "installment_number", "created_at")
    serializer_class = PaymentSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["collections.view"],
        "retrieve": ["collections.view"],
        "summary": ["collections.view"],
        "create": ["collections.manage"],
        "process": ["collections.manage"],
        "cancel": ["collections.manage"],
    }

    @staticmethod
    def _annotate(payment, as_of=None):
        if payment.status == PaymentStatus.CANCELLED:
            payment.derived_status = None
        else:
            payment.derived_status = resolve_status(payment, as_of or timezone.localdate())
        return payment

    def _query_rows(self, request, **overrides):
        params_serializer = PaymentQuerySerializer(data=request.query_params)
        params_serializer.is_valid(raise_exception=True)
        params = {**params_serializer.validated_data, **overrides}

        payments = self.get_queryset()
        if params.get("sale"):
            payments = payments.filter(sale_id=params["sale"])
        return query(
            payments,
            search_term=params["q"],
            status=params["status"],
            sort_key=params.get("ordering"),
            direction=params["direction"],
            as_of=params.get("as_of"),
        )

    def list(self, request):
        rows = self._query_rows(request)
        for payment, derived in rows:
            payment.derived_status = derived
        payments = [payment for payment, _ in rows]

        page = self.paginate_queryset(payments)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(payments, many=True).data)

    def retrieve(self, request, pk=None):
        payment = self._annotate(self.get_object())
        return Response(self.get_serializer(payment).data)

    def create(self, request):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = record_payment(actor=request.user, **serializer.validated_data)
        return Response(self.get_serializer(self._annotate(payment)).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):
        serializer = PaymentProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = process_payment(
            payment_id=pk,
            method=serializer.validated_data["method"],
            payment_date=serializer.validated_data.get("payment_date") or timezone.localdate(),
            notes=serializer.validated_data["notes"],
            actor=request.user,
        )
        return Response(self.get_serializer(self._annotate(payment)).data, status=200)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        payment = cancel_payment(payment_id=pk, actor=request.user)
        return Response(self.get_serializer(self._annotate(payment)).data, status=200)

    @action(detail=False, methods=["get"])
    def summary(self, request):
        rows = self._query_rows(request, status="all")
        totals = summarize(rows)
        return Response(
            {
                "as_of": request.query_params.get("as_of") or timezone.localdate().isoformat(),
                "count": len(rows),
                "by_status": totals,
            },
            status=200,
        )
