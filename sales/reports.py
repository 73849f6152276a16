import csv
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import HttpResponse
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import RoleCapabilityPermission
from common.utils import to_json_compatible
from core.models import Station
from sales.aggregation import breakdown, daily_trends, hourly_trends, rank, summarize
from sales.services import scoped_sales


class BaseReportView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "sales.reports.view"}
    cache_timeout = 60

    def _parse_timezone(self, tz_name):
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError({"timezone": "Invalid IANA timezone."})

    def _parse_limit(self, request, default=10, minimum=1, maximum=100):
        raw_limit = request.query_params.get("limit")
        if raw_limit is None:
            return default

        try:
            limit = int(raw_limit)
        except (TypeError, ValueError):
            raise ValidationError({"limit": f"Limit must be an integer between {minimum} and {maximum}."})

        if not minimum <= limit <= maximum:
            raise ValidationError({"limit": f"Limit must be between {minimum} and {maximum}."})
        return limit

    def _tz_name(self, request):
        tz_name = request.query_params.get("timezone")
        if tz_name:
            return tz_name
        station_id = request.query_params.get("station_id")
        if station_id and station_id != "all":
            try:
                station = Station.objects.filter(id=station_id).only("timezone").first()
            except (DjangoValidationError, ValueError):
                station = None
            if station and station.timezone:
                return station.timezone
        return settings.SALES_REPORT_TIMEZONE

    def _sales(self, request, tz):
        return list(scoped_sales(request.user, request.query_params, tz=tz))

    def _csv_response(self, filename, rows):
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="{filename}"'

        if not rows:
            return response

        writer = csv.DictWriter(response, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
        return response

    def _cached(self, request, key, callback):
        # Results are scoped, so the caller is part of the key.
        cache_key = f"reports:{key}:{request.user.pk}:{request.get_full_path()}"
        payload = cache.get(cache_key)
        if payload is None:
            payload = callback()
            cache.set(cache_key, payload, self.cache_timeout)
        return payload


class SalesSummaryReportView(BaseReportView):
    def get(self, request):
        tz_name = self._tz_name(request)
        tz = self._parse_timezone(tz_name)

        payload = self._cached(request, "sales-summary", lambda: summarize(self._sales(request, tz), tz=tz).as_dict())
        if request.query_params.get("format") == "csv":
            return self._csv_response("sales_summary.csv", [payload])
        return Response(to_json_compatible({"timezone": tz_name, **payload}))


class SalesStatsReportView(BaseReportView):
    def get(self, request):
        tz_name = self._tz_name(request)
        tz = self._parse_timezone(tz_name)
        limit = self._parse_limit(request)

        def run():
            sales = self._sales(request, tz)
            names = {str(sale.product_id): sale.product.name for sale in sales}
            top_products = rank(sales, "product_id", limit=limit)
            for row in top_products:
                row["product_name"] = names.get(row["product_id"], "")
            return {
                "top_products": top_products,
                "by_payment_method": breakdown(sales, "payment_method"),
                "by_customer_type": breakdown(sales, "customer_type"),
                "hourly_trends": hourly_trends(sales, tz=tz),
            }

        payload = self._cached(request, "sales-stats", run)
        if request.query_params.get("format") == "csv":
            return self._csv_response("top_products.csv", payload["top_products"])
        return Response(to_json_compatible({"timezone": tz_name, **payload}))


class DailyTrendsReportView(BaseReportView):
    def get(self, request):
        tz_name = self._tz_name(request)
        tz = self._parse_timezone(tz_name)
        days = self._parse_limit(request, default=30, maximum=366)

        rows = self._cached(request, "daily-trends", lambda: daily_trends(self._sales(request, tz), tz=tz, days=days))
        if request.query_params.get("format") == "csv":
            return self._csv_response("daily_trends.csv", rows)
        return Response(to_json_compatible({"timezone": tz_name, "results": rows}))
