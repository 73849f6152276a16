from rest_framework.routers import DefaultRouter

from forecourt.views import ProductViewSet, PumpViewSet

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"pumps", PumpViewSet, basename="pump")

urlpatterns = router.urls
