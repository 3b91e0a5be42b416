from django.db.models import Q
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.billing.queries import build_schedule
from apps.billing.serializers import ScheduleEntrySerializer
from apps.common.permissions import RolePermission
from apps.sales.models import Client, Sale, normalize_phone
from apps.sales.serializers import ClientSerializer, SaleCreateSerializer, SaleSerializer
from apps.sales.services import create_sale


class ClientViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Client.objects.order_by("name")
    serializer_class = ClientSerializer
    permission_classes = [RolePermission]
    capability_map = {"list": ["sales.view"], "retrieve": ["sales.view"], "create": ["sales.create"]}

    def get_queryset(self):
        queryset = super().get_queryset()
        query = self.request.query_params.get("q")
        if query:
            normalized = normalize_phone(query)
            queryset = queryset.filter(
                Q(name__icontains=query) | Q(email__icontains=query) | Q(phone_normalized__icontains=normalized)
            )
        return queryset


class SaleViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Sale.objects.select_related("client").prefetch_related("payments").order_by("-created_at")
    serializer_class = SaleSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["sales.view"],
        "retrieve": ["sales.view"],
        "create": ["sales.create"],
        "schedule": ["collections.view"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        client_id = self.request.query_params.get("client")
        query = self.request.query_params.get("q")
        financed = self.request.query_params.get("financed")
        if client_id:
            queryset = queryset.filter(client_id=client_id)
        if query:
            queryset = queryset.filter(Q(id__icontains=query) | Q(client_name__icontains=query))
        if str(financed).lower() in {"1", "true", "yes"}:
            queryset = queryset.filter(installment_count__gt=0)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = SaleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        sale = create_sale(
            sale_id=data.get("id"),
            client=data["client"],
            description=data["description"],
            total_cents=data["total_cents"],
            installment_count=data["installment_count"],
            initial_payment=data.get("initial_payment"),
            actor=request.user,
        )
        sale = self.get_queryset().get(pk=sale.pk)
        return Response(self.get_serializer(sale).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def schedule(self, request, pk=None):
        sale = self.get_object()
        as_of = request.query_params.get("as_of") or timezone.localdate()
        entries = build_schedule(sale, sale.payments.all(), as_of=as_of)
        return Response(
            {
                "sale_id": sale.id,
                "client_name": sale.client_name,
                "total_cents": sale.total_cents,
                "installment_count": sale.installment_count,
                "installments": ScheduleEntrySerializer(entries, many=True).data,
            },
            status=200,
        )
