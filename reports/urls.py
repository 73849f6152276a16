from rest_framework.routers import DefaultRouter

from reports.views import DailyReportViewSet

router = DefaultRouter()
router.register(r"daily-reports", DailyReportViewSet, basename="daily-report")

urlpatterns = router.urls
