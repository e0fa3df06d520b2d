from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import AdminAttributionViewSet, AdminPayoutViewSet, OrderCompletedEventView, OrderReversedEventView

router = DefaultRouter()
router.register("admin/attributions", AdminAttributionViewSet, basename="admin-attribution")
router.register("admin/payouts", AdminPayoutViewSet, basename="admin-payout")

urlpatterns = [
    path("events/order-completed/", OrderCompletedEventView.as_view(), name="event-order-completed"),
    path("events/order-reversed/", OrderReversedEventView.as_view(), name="event-order-reversed"),
] + router.urls
