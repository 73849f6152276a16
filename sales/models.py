import uuid

from django.db import models

from core.models import Station, User
from forecourt.models import Product, Pump


class Sale(models.Model):
    class PaymentMethod(models.TextChoices):
        CASH = "cash", "Cash"
        MOBILE_MONEY = "mobile_money", "Mobile Money"
        CARD = "card", "Card"
        CREDIT = "credit", "Credit"

    class CustomerType(models.TextChoices):
        RETAIL = "retail", "Retail"
        COMMERCIAL = "commercial", "Commercial"
        FLEET = "fleet", "Fleet"

    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"
        PENDING = "pending", "Pending"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name="sales")
    pump = models.ForeignKey(Pump, on_delete=models.PROTECT, related_name="sales")
    pump_number = models.PositiveIntegerField()
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="sales")
    opening_meter = models.DecimalField(max_digits=14, decimal_places=3)
    closing_meter = models.DecimalField(max_digits=14, decimal_places=3)
    litres_sold = models.DecimalField(max_digits=14, decimal_places=3)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    cash_received = models.DecimalField(max_digits=14, decimal_places=2)
    variance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod, default=PaymentMethod.CASH)
    customer_type = models.CharField(max_length=16, choices=CustomerType, default=CustomerType.RETAIL)
    status = models.CharField(max_length=16, choices=Status, default=Status.COMPLETED)
    transaction_time = models.DateTimeField()
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name="+")
    is_void = models.BooleanField(default=False)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["station", "transaction_time"], name="sale_station_time_idx"),
            models.Index(fields=["pump", "transaction_time"], name="sale_pump_time_idx"),
            models.Index(fields=["status", "transaction_time"], name="sale_status_time_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(closing_meter__gte=models.F("opening_meter")),
                name="sale_closing_gte_opening",
            ),
            models.CheckConstraint(
                condition=models.Q(is_void=False) | models.Q(status="cancelled"),
                name="sale_void_implies_cancelled",
            ),
        ]

    @property
    def is_counted(self):
        return not self.is_void and self.status != self.Status.CANCELLED
