"""Django admin configuration for the orders app.

Status is read-only here: it changes only through the ledger services.
"""
from django.contrib import admin

from orders.models import Order, OrderStatusHistory


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    can_delete = False
    fields = ("created_at", "from_status", "to_status", "actor", "is_override", "reason")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "status",
        "source",
        "pickup_site",
        "agent",
        "total",
        "needs_review",
        "status_changed_at",
    )
    list_filter = ("status", "source", "needs_review", "pickup_site")
    search_fields = ("order_number", "buyer__email", "seller__email", "agent__agent_code")
    readonly_fields = (
        "status",
        "agent",
        "claimed_at",
        "status_changed_at",
        "delivery_code",
        "delivery_code_expires_at",
        "commission_amount",
        "failed_confirmation_count",
        "needs_review",
        "review_reason",
        "flagged_at",
        "created_at",
        "updated_at",
    )
    inlines = [OrderStatusHistoryInline]
