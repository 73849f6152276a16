from django.urls import path
from rest_framework.routers import DefaultRouter

from sales.reports import DailyTrendsReportView, SalesStatsReportView, SalesSummaryReportView
from sales.views import SaleViewSet

router = DefaultRouter()
router.register(r"sales", SaleViewSet, basename="sale")

urlpatterns = router.urls + [
    path("reports/sales-summary/", SalesSummaryReportView.as_view(), name="report-sales-summary"),
    path("reports/sales-stats/", SalesStatsReportView.as_view(), name="report-sales-stats"),
    path("reports/daily-trends/", DailyTrendsReportView.as_view(), name="report-daily-trends"),
]
