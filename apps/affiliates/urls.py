from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import AdminAffiliateViewSet, AffiliateViewSet, ReferralVisitView

router = DefaultRouter()
router.register("me", AffiliateViewSet, basename="affiliate-me")
router.register("admin/affiliates", AdminAffiliateViewSet, basename="admin-affiliate")

urlpatterns = router.urls + [
    path("visit/", ReferralVisitView.as_view(), name="affiliate-visit"),
]
