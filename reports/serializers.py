from rest_framework import serializers

from reports.integrity import fingerprint
from reports.models import DailyReport


class DailyReportSerializer(serializers.ModelSerializer):
    station_name = serializers.CharField(source="station.name", read_only=True)
    fingerprint = serializers.SerializerMethodField()

    class Meta:
        model = DailyReport
        fields = [
            "id",
            "station",
            "station_name",
            "report_date",
            "total_sales",
            "cash_collected",
            "status",
            "submitted_by",
            "notes",
            "fingerprint",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_fingerprint(self, obj):
        return fingerprint(obj)


class DailyReportCreateSerializer(serializers.Serializer):
    station = serializers.UUIDField()
    report_date = serializers.DateField()
    status = serializers.ChoiceField(
        choices=[DailyReport.Status.DRAFT, DailyReport.Status.SUBMITTED],
        default=DailyReport.Status.DRAFT,
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class ReportVerificationSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    report_date = serializers.DateField()
    station_code = serializers.CharField(source="station.code")
    station_name = serializers.CharField(source="station.name")
    total_sales = serializers.DecimalField(max_digits=14, decimal_places=2)
    cash_collected = serializers.DecimalField(max_digits=14, decimal_places=2)
    status = serializers.CharField()
