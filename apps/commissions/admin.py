from django.contrib import admin

from .models import Attribution, CommissionAdjustment, PartialReversal, PayoutRequest


class PartialReversalInline(admin.TabularInline):
    model = PartialReversal
    extra = 0
    readonly_fields = ("base_amount", "commission_amount", "reason", "created_at")


@admin.register(Attribution)
class AttributionAdmin(admin.ModelAdmin):
    inlines = [PartialReversalInline]
    list_display = ("order_id", "affiliate", "month_key", "base_amount", "commission_amount", "status")
    search_fields = ("order_id", "order_number", "affiliate__code")
    list_filter = ("status", "month_key")
    readonly_fields = ("base_amount", "commission_percent", "commission_amount", "created_at")


@admin.register(CommissionAdjustment)
class CommissionAdjustmentAdmin(admin.ModelAdmin):
    list_display = ("affiliate", "month_key", "amount", "created_by", "created_at")
    search_fields = ("affiliate__code", "note")


@admin.register(PayoutRequest)
class PayoutRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "affiliate", "month_key", "amount", "status", "created_at", "paid_at")
    search_fields = ("affiliate__code", "user__email", "utr", "payout_reference")
    list_filter = ("status", "month_key")
    exclude = ("aadhaar_number",)
