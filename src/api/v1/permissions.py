"""Custom DRF permissions for the fulfillment API."""
from rest_framework.permissions import BasePermission


class IsFulfillmentAdmin(BasePermission):
    """Allow access to superusers and users with the ADMIN role."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_fulfillment_admin


class IsAgent(BasePermission):
    """Allow access to users holding an active agent profile."""

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        agent = getattr(request.user, "agent", None)
        return agent is not None and agent.is_active


class IsCourier(IsAgent):
    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.agent.is_courier
