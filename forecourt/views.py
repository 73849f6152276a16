from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import RoleCapabilityPermission
from core.scoping import scope_for_user
from forecourt.models import Product, Pump
from forecourt.serializers import ProductSerializer, PumpPriceSerializer, PumpSerializer
from forecourt.services import active_products, resolve_unit_price
from sales.calculator import resolve_product_for_pump


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.filter(is_active=True).order_by("name")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "pumps.view", "retrieve": "pumps.view"}
    pagination_class = None


class PumpViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Pump.objects.select_related("station").order_by("station__code", "number")
    serializer_class = PumpSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "pumps.view", "retrieve": "pumps.view", "price": "pumps.view"}

    def get_queryset(self):
        scope = scope_for_user(self.request.user)
        queryset = scope.filter_records(super().get_queryset())
        station_id = self.request.query_params.get("station_id")
        if station_id and station_id != "all":
            queryset = queryset.filter(station=scope.require_station(station_id))
        if self.request.query_params.get("is_active") == "true":
            queryset = queryset.filter(is_active=True)
        return queryset

    @action(detail=True, methods=["get"], url_path="price")
    def price(self, request, pk=None):
        pump = self.get_object()
        product = resolve_product_for_pump(pump, active_products())
        payload = {
            "pump": pump.id,
            "station": pump.station_id,
            "product": product.id,
            "product_name": product.name,
            "unit_price": resolve_unit_price(pump.station_id, product.id),
            "current_meter_reading": pump.current_meter_reading,
        }
        return Response(PumpPriceSerializer(payload).data)
