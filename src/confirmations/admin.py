from django.contrib import admin

from confirmations.models import Confirmation, TrackingPoint


@admin.register(Confirmation)
class ConfirmationAdmin(admin.ModelAdmin):
    list_display = ("order", "kind", "from_status", "to_status", "is_verified", "verifier", "created_at")
    list_filter = ("kind", "is_verified")
    search_fields = ("order__order_number", "rejection_reason")
    list_select_related = ("order", "verifier")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(TrackingPoint)
class TrackingPointAdmin(admin.ModelAdmin):
    list_display = ("order", "status_at_time", "latitude", "longitude", "distance_to_site_meters", "created_at")
    list_filter = ("status_at_time",)
    search_fields = ("order__order_number",)
    list_select_related = ("order",)
