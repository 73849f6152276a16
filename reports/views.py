from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.scoping import scope_for_user
from reports import integrity
from reports.models import DailyReport
from reports.serializers import DailyReportCreateSerializer, DailyReportSerializer, ReportVerificationSerializer
from reports.services import create_daily_report, verify_report


class DailyReportViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = DailyReport.objects.all()
    serializer_class = DailyReportSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "report.view",
        "retrieve": "report.view",
        "fingerprint": "report.view",
        "create": "report.submit",
    }

    def get_permissions(self):
        if self.action == "verify":
            return [AllowAny()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = scope_for_user(self.request.user).filter_records(
            super().get_queryset().select_related("station")
        )
        station_id = self.request.query_params.get("station_id")
        if station_id and station_id != "all":
            queryset = queryset.filter(station=scope_for_user(self.request.user).require_station(station_id))
        report_status = self.request.query_params.get("status")
        if report_status:
            queryset = queryset.filter(status=report_status)
        return queryset.order_by("-report_date", "-created_at")

    def create(self, request, *args, **kwargs):
        serializer = DailyReportCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        report = create_daily_report(
            request.user,
            station_id=data["station"],
            report_date=data["report_date"],
            status=data["status"],
            notes=data.get("notes"),
        )
        payload = DailyReportSerializer(report).data
        create_audit_log_from_request(
            request,
            action="daily_report.create",
            entity="daily_report",
            entity_id=report.id,
            after_snapshot=payload,
            station=report.station,
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="fingerprint")
    def fingerprint(self, request, pk=None):
        report = self.get_object()
        return Response({"id": str(report.id), "fingerprint": integrity.fingerprint(report)})

    @action(detail=False, methods=["get"], url_path="verify", authentication_classes=[])
    def verify(self, request):
        report, expected = verify_report(request.query_params.get("id"), request.query_params.get("hash"))
        return Response(
            {
                "valid": True,
                "fingerprint": expected,
                "report": ReportVerificationSerializer(report).data,
            }
        )
