from rest_framework import serializers

from forecourt.models import Product, Pump


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ["id", "name", "unit", "is_active"]
        read_only_fields = fields


class PumpSerializer(serializers.ModelSerializer):
    station_name = serializers.CharField(source="station.name", read_only=True)

    class Meta:
        model = Pump
        fields = [
            "id",
            "station",
            "station_name",
            "number",
            "name",
            "fuel_type",
            "current_meter_reading",
            "is_active",
            "updated_at",
        ]
        read_only_fields = fields


class PumpPriceSerializer(serializers.Serializer):
    pump = serializers.UUIDField()
    station = serializers.UUIDField()
    product = serializers.UUIDField()
    product_name = serializers.CharField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    current_meter_reading = serializers.DecimalField(max_digits=14, decimal_places=3)
