from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.scoping import scope_for_user
from sales.models import Sale
from sales.serializers import (
    SaleCreateSerializer,
    SalePreviewResultSerializer,
    SalePreviewSerializer,
    SaleSerializer,
    SaleUpdateSerializer,
)
from sales.services import cancel_sale, edit_sale, preview_sale, record_sale, scoped_sales, void_sale


class SaleViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Sale.objects.all()
    serializer_class = SaleSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "sales.view",
        "retrieve": "sales.view",
        "create": "sales.create",
        "preview": "sales.create",
        "partial_update": "sales.edit",
        "destroy": "sales.edit",
        "void": "sales.edit",
    }
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def get_queryset(self):
        if self.action == "list":
            return scoped_sales(self.request.user, self.request.query_params)
        return scope_for_user(self.request.user).filter_records(
            super().get_queryset().select_related("station", "pump", "product")
        )

    def _audit(self, *, action, sale, before_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity="sale",
            entity_id=sale.id,
            before_snapshot=before_snapshot,
            after_snapshot=SaleSerializer(sale).data,
            station=sale.station,
        )

    def create(self, request, *args, **kwargs):
        serializer = SaleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        sale = record_sale(
            user=request.user,
            pump_id=data["pump"],
            product_id=data.get("product"),
            opening_meter=data.get("opening_meter"),
            closing_meter=data["closing_meter"],
            unit_price=data.get("unit_price"),
            cash_received=data.get("cash_received"),
            payment_method=data["payment_method"],
            customer_type=data["customer_type"],
            status=data["status"],
            notes=data.get("notes"),
            transaction_time=data.get("transaction_time"),
        )
        self._audit(action="sale.create", sale=sale)
        return Response(SaleSerializer(sale).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        sale = self.get_object()
        serializer = SaleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        before_snapshot = SaleSerializer(sale).data
        sale = edit_sale(sale, serializer.validated_data)
        self._audit(action="sale.update", sale=sale, before_snapshot=before_snapshot)
        return Response(SaleSerializer(sale).data)

    def destroy(self, request, *args, **kwargs):
        sale = self.get_object()
        before_snapshot = SaleSerializer(sale).data
        sale = cancel_sale(sale)
        self._audit(action="sale.cancel", sale=sale, before_snapshot=before_snapshot)
        return Response(SaleSerializer(sale).data)

    @action(detail=True, methods=["post"], url_path="void")
    def void(self, request, pk=None):
        sale = self.get_object()
        before_snapshot = {"status": sale.status, "is_void": sale.is_void}
        sale = void_sale(sale)
        self._audit(action="sale.void", sale=sale, before_snapshot=before_snapshot)
        return Response(SaleSerializer(sale).data)

    @action(detail=False, methods=["post"], url_path="preview")
    def preview(self, request):
        serializer = SalePreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = preview_sale(
            request.user,
            pump_id=data["pump"],
            opening_meter=data.get("opening_meter"),
            closing_meter=data["closing_meter"],
            unit_price=data.get("unit_price"),
            cash_received=data.get("cash_received"),
        )
        return Response(SalePreviewResultSerializer(result).data)
