import uuid

from django.db import models

from core.models import Station


class Product(models.Model):
    class Unit(models.TextChoices):
        LITRE = "litre", "Litre"
        KILOGRAM = "kg", "Kilogram"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=128, unique=True)
    unit = models.CharField(max_length=16, choices=Unit, default=Unit.LITRE)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class StationPrice(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.CASCADE, related_name="prices")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="station_prices")
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["station", "product"], name="uniq_station_product_price"),
        ]


class Pump(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name="pumps")
    number = models.PositiveIntegerField()
    name = models.CharField(max_length=64)
    fuel_type = models.CharField(max_length=64)
    current_meter_reading = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["station", "is_active"], name="pump_station_active_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["station", "number"], name="uniq_pump_number_per_station"),
        ]
