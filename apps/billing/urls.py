from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.billing.views import InstallmentPlanView, PaymentViewSet

router = DefaultRouter()
router.register("payments", PaymentViewSet, basename="payment")

urlpatterns = [
    path("installment-plans/", InstallmentPlanView.as_view(), name="installment-plan"),
] + router.urls
