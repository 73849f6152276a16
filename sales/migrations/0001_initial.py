import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("forecourt", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("pump_number", models.PositiveIntegerField()),
                ("opening_meter", models.DecimalField(decimal_places=3, max_digits=14)),
                ("closing_meter", models.DecimalField(decimal_places=3, max_digits=14)),
                ("litres_sold", models.DecimalField(decimal_places=3, max_digits=14)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("cash_received", models.DecimalField(decimal_places=2, max_digits=14)),
                ("variance", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("mobile_money", "Mobile Money"),
                            ("card", "Card"),
                            ("credit", "Credit"),
                        ],
                        default="cash",
                        max_length=16,
                    ),
                ),
                (
                    "customer_type",
                    models.CharField(
                        choices=[("retail", "Retail"), ("commercial", "Commercial"), ("fleet", "Fleet")],
                        default="retail",
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("completed", "Completed"),
                            ("pending", "Pending"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        default="completed",
                        max_length=16,
                    ),
                ),
                ("transaction_time", models.DateTimeField()),
                ("is_void", models.BooleanField(default=False)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="forecourt.product",
                    ),
                ),
                (
                    "pump",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="forecourt.pump",
                    ),
                ),
                (
                    "station",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="core.station",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["station", "transaction_time"], name="sale_station_time_idx"),
                    models.Index(fields=["pump", "transaction_time"], name="sale_pump_time_idx"),
                    models.Index(fields=["status", "transaction_time"], name="sale_status_time_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("closing_meter__gte", models.F("opening_meter"))),
                        name="sale_closing_gte_opening",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("is_void", False), ("status", "cancelled"), _connector="OR"),
                        name="sale_void_implies_cancelled",
                    ),
                ],
            },
        ),
    ]
