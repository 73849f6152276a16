import uuid

from django.db import models

from core.models import Station, User


class DailyReport(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SUBMITTED = "submitted", "Submitted"
        APPROVED = "approved", "Approved"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name="daily_reports")
    report_date = models.DateField()
    total_sales = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    cash_collected = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = models.CharField(max_length=16, choices=Status, default=Status.DRAFT)
    submitted_by = models.ForeignKey(User, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["station", "report_date"], name="uniq_daily_report_per_station_day"),
        ]
        indexes = [
            models.Index(fields=["report_date"], name="daily_report_date_idx"),
        ]
