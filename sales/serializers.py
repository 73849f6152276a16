from rest_framework import serializers

from sales.models import Sale


class SaleSerializer(serializers.ModelSerializer):
    station_name = serializers.CharField(source="station.name", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = Sale
        fields = [
            "id",
            "station",
            "station_name",
            "pump",
            "pump_number",
            "product",
            "product_name",
            "opening_meter",
            "closing_meter",
            "litres_sold",
            "unit_price",
            "total_amount",
            "cash_received",
            "variance",
            "payment_method",
            "customer_type",
            "status",
            "transaction_time",
            "created_by",
            "is_void",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class SaleCreateSerializer(serializers.Serializer):
    pump = serializers.UUIDField()
    product = serializers.UUIDField(required=False, allow_null=True)
    opening_meter = serializers.DecimalField(max_digits=14, decimal_places=3, required=False, allow_null=True)
    closing_meter = serializers.DecimalField(max_digits=14, decimal_places=3)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    cash_received = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=Sale.PaymentMethod.choices, default=Sale.PaymentMethod.CASH)
    customer_type = serializers.ChoiceField(choices=Sale.CustomerType.choices, default=Sale.CustomerType.RETAIL)
    status = serializers.ChoiceField(
        choices=[Sale.Status.COMPLETED, Sale.Status.PENDING],
        default=Sale.Status.COMPLETED,
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    transaction_time = serializers.DateTimeField(required=False)


class SaleUpdateSerializer(serializers.Serializer):
    opening_meter = serializers.DecimalField(max_digits=14, decimal_places=3, required=False)
    closing_meter = serializers.DecimalField(max_digits=14, decimal_places=3, required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    cash_received = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    payment_method = serializers.ChoiceField(choices=Sale.PaymentMethod.choices, required=False)
    customer_type = serializers.ChoiceField(choices=Sale.CustomerType.choices, required=False)
    status = serializers.ChoiceField(
        choices=[Sale.Status.COMPLETED, Sale.Status.PENDING, Sale.Status.REFUNDED],
        required=False,
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field must be provided.")
        return attrs


class SalePreviewSerializer(serializers.Serializer):
    pump = serializers.UUIDField()
    opening_meter = serializers.DecimalField(max_digits=14, decimal_places=3, required=False, allow_null=True)
    closing_meter = serializers.DecimalField(max_digits=14, decimal_places=3)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    cash_received = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)


class SalePreviewResultSerializer(serializers.Serializer):
    pump = serializers.UUIDField()
    product = serializers.UUIDField()
    opening_meter = serializers.DecimalField(max_digits=14, decimal_places=3)
    closing_meter = serializers.DecimalField(max_digits=14, decimal_places=3)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    litres_sold = serializers.DecimalField(max_digits=14, decimal_places=3)
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    cash_received = serializers.DecimalField(max_digits=14, decimal_places=2)
    variance = serializers.DecimalField(max_digits=14, decimal_places=2)
