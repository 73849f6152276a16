from rest_framework.routers import DefaultRouter

from deposits.views import BankDepositViewSet

router = DefaultRouter()
router.register(r"deposits", BankDepositViewSet, basename="deposit")

urlpatterns = router.urls
