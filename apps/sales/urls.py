from rest_framework.routers import DefaultRouter

from apps.sales.views import ClientViewSet, SaleViewSet

router = DefaultRouter()
router.register("clients", ClientViewSet, basename="client")
router.register("sales", SaleViewSet, basename="sale")

urlpatterns = router.urls
