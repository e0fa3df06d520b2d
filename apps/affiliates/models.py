import uuid

from django.db import models


class Affiliate(models.Model):
    """
    A user enrolled to earn commission on referred orders.

    The month_* fields are the rolling counters for the bucket named by
    ``month_key``; the lifetime_* fields only move backwards on reversal.
    ``rules`` holds the tier table, sorted ascending by ``min_monthly_sales``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        "authentication.User",
        on_delete=models.PROTECT,
        related_name="affiliate",
    )
    code = models.CharField(max_length=32, unique=True)
    is_active = models.BooleanField(default=True)
    rules = models.JSONField(default=list, blank=True)
    month_key = models.CharField(max_length=7, db_index=True)
    month_sales = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    month_orders = models.IntegerField(default=0)
    month_commission_accrued = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    lifetime_sales = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    lifetime_commission = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    fund_account_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-month_sales", "-created_at"]
        indexes = [
            models.Index(fields=["is_active", "code"], name="affiliate_active_code_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.user.email})"
