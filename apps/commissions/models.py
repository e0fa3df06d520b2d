import uuid

from django.db import models
from django.db.models import Q


class Attribution(models.Model):
    STATUS_OPEN = "open"
    STATUS_LOCKED = "locked"
    STATUS_REVERSED = "reversed"
    STATUS_CHOICES = [
        (STATUS_OPEN, "Open"),
        (STATUS_LOCKED, "Locked"),
        (STATUS_REVERSED, "Reversed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    affiliate = models.ForeignKey(
        "affiliates.Affiliate",
        on_delete=models.PROTECT,
        related_name="attributions",
    )
    order_id = models.CharField(max_length=64)
    order_number = models.CharField(max_length=64, blank=True, default="")
    click_id = models.CharField(max_length=64, blank=True, default="")
    user = models.ForeignKey(
        "authentication.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="referred_attributions",
    )
    month_key = models.CharField(max_length=7)
    base_amount = models.DecimalField(max_digits=15, decimal_places=2)
    commission_percent = models.DecimalField(max_digits=5, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN)
    completed_at = models.DateTimeField()
    holdback_until = models.DateTimeField()
    locked_at = models.DateTimeField(blank=True, null=True)
    reversed_at = models.DateTimeField(blank=True, null=True)
    reversal_reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["affiliate", "order_id"], name="uniq_attribution_affiliate_order"),
        ]
        indexes = [
            models.Index(fields=["affiliate", "month_key", "status"], name="attr_aff_month_status_idx"),
            models.Index(fields=["status", "holdback_until"], name="attr_status_holdback_idx"),
            models.Index(fields=["order_id"], name="attr_order_id_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} -> {self.affiliate_id} ({self.status})"


class PartialReversal(models.Model):
    """Part of an order returned after completion; the parent row keeps the remainder."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    attribution = models.ForeignKey(
        Attribution,
        on_delete=models.PROTECT,
        related_name="partial_reversals",
    )
    base_amount = models.DecimalField(max_digits=15, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=15, decimal_places=2)
    reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.attribution_id} -{self.base_amount}"


class CommissionAdjustment(models.Model):
    """Admin-entered signed correction to an affiliate's commission totals."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    affiliate = models.ForeignKey(
        "affiliates.Affiliate",
        on_delete=models.PROTECT,
        related_name="adjustments",
    )
    month_key = models.CharField(max_length=7)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    note = models.TextField()
    created_by = models.ForeignKey(
        "authentication.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="commission_adjustments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class PayoutRequest(models.Model):
    STATUS_REQUESTED = "requested"
    STATUS_APPROVED = "approved"
    STATUS_PAID = "paid"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES = [
        (STATUS_REQUESTED, "Requested"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_PAID, "Paid"),
        (STATUS_REJECTED, "Rejected"),
    ]
    TERMINAL_STATUSES = (STATUS_PAID, STATUS_REJECTED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    affiliate = models.ForeignKey(
        "affiliates.Affiliate",
        on_delete=models.PROTECT,
        related_name="payout_requests",
    )
    user = models.ForeignKey(
        "authentication.User",
        on_delete=models.PROTECT,
        related_name="payout_requests",
    )
    month_key = models.CharField(max_length=7)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_REQUESTED)

    account_holder = models.CharField(max_length=255)
    bank_account = models.CharField(max_length=34)
    ifsc = models.CharField(max_length=11)
    bank_name = models.CharField(max_length=100)
    city = models.CharField(max_length=100)
    upi_id = models.CharField(max_length=255, blank=True, default="")
    pan = models.CharField(max_length=10, blank=True, default="")
    aadhaar_number = models.CharField(max_length=12)

    payout_reference = models.CharField(max_length=100, blank=True, default="")
    utr = models.CharField(max_length=100, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    reviewed_by = models.ForeignKey(
        "authentication.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="reviewed_payout_requests",
    )
    approved_at = models.DateTimeField(blank=True, null=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    rejected_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["affiliate", "month_key"],
                condition=~Q(status="rejected"),
                name="uniq_live_payout_per_affiliate_month",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "month_key"], name="payout_status_month_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.affiliate_id} {self.month_key} {self.amount} ({self.status})"
