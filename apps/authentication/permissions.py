from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import permissions


class IsAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "role", None) in ("admin", "super_admin"))


class HasEventToken(permissions.BasePermission):
    """
    Service-to-service access for the order subsystem's event deliveries.

    Accepts a matching ``X-Commission-Events-Token`` header, or an
    authenticated admin replaying an event by hand.
    """

    header = "HTTP_X_COMMISSION_EVENTS_TOKEN"

    def has_permission(self, request, view):
        expected = getattr(settings, "COMMISSION_EVENTS_TOKEN", "") or ""
        supplied = request.META.get(self.header, "")
        if expected and supplied and constant_time_compare(expected, supplied):
            return True
        return IsAdmin().has_permission(request, view)
