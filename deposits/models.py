import uuid

from django.db import models

from core.models import Station, User


class BankDeposit(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        RECONCILED = "reconciled", "Reconciled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name="deposits")
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    bank_name = models.CharField(max_length=128)
    account_number = models.CharField(max_length=64)
    reference_number = models.CharField(max_length=64, null=True, blank=True)
    depositor_name = models.CharField(max_length=255, blank=True, default="")
    deposit_date = models.DateField()
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    notes = models.TextField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    confirmed_by = models.ForeignKey(User, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    reconciliation_date = models.DateTimeField(null=True, blank=True)
    reconciled_by = models.ForeignKey(User, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name="+")
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["station", "deposit_date"], name="deposit_station_date_idx"),
            models.Index(fields=["status", "deposit_date"], name="deposit_status_date_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["reference_number"],
                condition=(
                    models.Q(reference_number__isnull=False)
                    & ~models.Q(reference_number="")
                    & models.Q(is_deleted=False)
                ),
                name="uniq_deposit_reference_number",
            ),
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="deposit_amount_positive"),
            models.CheckConstraint(
                condition=(
                    models.Q(status="reconciled", reconciliation_date__isnull=False)
                    | (~models.Q(status="reconciled") & models.Q(reconciliation_date__isnull=True))
                ),
                name="deposit_reconciled_iff_dated",
            ),
        ]
