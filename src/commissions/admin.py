"""Admin configuration for the commissions app.

Amounts and statuses are read-only here; reviews go through the services.
"""
from django.contrib import admin

from commissions.models import Commission, CommissionPolicy, PaymentProof


@admin.register(CommissionPolicy)
class CommissionPolicyAdmin(admin.ModelAdmin):
    list_display = ("commission_type", "mode", "value", "is_active", "created_at")
    list_filter = ("commission_type", "is_active")


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ("order", "agent", "commission_type", "amount", "status", "reviewed_by", "created_at")
    list_filter = ("status", "commission_type")
    search_fields = ("order__order_number", "agent__agent_code")
    list_select_related = ("order", "agent", "reviewed_by")
    readonly_fields = (
        "agent",
        "order",
        "commission_type",
        "mode",
        "rate",
        "base_amount",
        "amount",
        "status",
        "reviewed_by",
        "reviewed_at",
        "paid_by",
        "paid_at",
        "payment_reference",
        "created_at",
        "updated_at",
    )


@admin.register(PaymentProof)
class PaymentProofAdmin(admin.ModelAdmin):
    list_display = ("order", "agent", "amount", "method", "status", "reviewed_by", "created_at")
    list_filter = ("status", "method")
    search_fields = ("order__order_number", "reference")
    readonly_fields = (
        "order", "agent", "amount", "method", "attachment", "status", "reviewed_by", "reviewed_at", "created_at",
    )
