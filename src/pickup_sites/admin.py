"""Admin configuration for the pickup sites app."""
from django.contrib import admin

from pickup_sites.models import PickupSite


@admin.register(PickupSite)
class PickupSiteAdmin(admin.ModelAdmin):
    list_display = ("name", "city", "capacity", "current_load", "is_active")
    list_filter = ("is_active", "city")
    search_fields = ("name", "address", "city")
    readonly_fields = ("current_load", "created_at", "updated_at")
