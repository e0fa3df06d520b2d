from django.contrib import admin

from .models import Affiliate


@admin.register(Affiliate)
class AffiliateAdmin(admin.ModelAdmin):
    list_display = ("code", "user", "is_active", "month_key", "month_sales", "month_orders", "lifetime_commission")
    search_fields = ("code", "user__email", "user__full_name")
    list_filter = ("is_active", "month_key")
    readonly_fields = (
        "month_sales",
        "month_orders",
        "month_commission_accrued",
        "lifetime_sales",
        "lifetime_commission",
        "created_at",
        "updated_at",
    )
