import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="BankDeposit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("bank_name", models.CharField(max_length=128)),
                ("account_number", models.CharField(max_length=64)),
                ("reference_number", models.CharField(blank=True, max_length=64, null=True)),
                ("depositor_name", models.CharField(blank=True, default="", max_length=255)),
                ("deposit_date", models.DateField()),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("confirmed", "Confirmed"), ("reconciled", "Reconciled")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("notes", models.TextField(blank=True, null=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("reconciliation_date", models.DateTimeField(blank=True, null=True)),
                ("is_deleted", models.BooleanField(default=False)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "confirmed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reconciled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "station",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="deposits",
                        to="core.station",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["station", "deposit_date"], name="deposit_station_date_idx"),
                    models.Index(fields=["status", "deposit_date"], name="deposit_status_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("reference_number__isnull", False),
                            models.Q(("reference_number", ""), _negated=True),
                            ("is_deleted", False),
                        ),
                        fields=("reference_number",),
                        name="uniq_deposit_reference_number",
                    ),
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="deposit_amount_positive"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("reconciliation_date__isnull", False), ("status", "reconciled")),
                            models.Q(models.Q(("status", "reconciled"), _negated=True), ("reconciliation_date__isnull", True)),
                            _connector="OR",
                        ),
                        name="deposit_reconciled_iff_dated",
                    ),
                ],
            },
        ),
    ]
