import re
from decimal import Decimal

from rest_framework import serializers

from .events import OrderCompletion, OrderReversal
from .models import Attribution, CommissionAdjustment, PayoutRequest

AADHAAR_RE = re.compile(r"^\d{12}$")
IFSC_RE = re.compile(r"^[A-Z]{4}[A-Z0-9]{7}$")
UPI_RE = re.compile(r"^[A-Za-z0-9._-]{2,256}@[A-Za-z][A-Za-z0-9]{1,63}$")
PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
MONTH_KEY_RE = r"^\d{4}-(0[1-9]|1[0-2])$"


class AttributionSerializer(serializers.ModelSerializer):
    affiliate_code = serializers.CharField(source="affiliate.code", read_only=True)

    class Meta:
        model = Attribution
        fields = [
            "id",
            "affiliate",
            "affiliate_code",
            "order_id",
            "order_number",
            "click_id",
            "user",
            "month_key",
            "base_amount",
            "commission_percent",
            "commission_amount",
            "status",
            "completed_at",
            "holdback_until",
            "locked_at",
            "reversed_at",
            "reversal_reason",
            "created_at",
        ]


class PayoutRequestSerializer(serializers.ModelSerializer):
    affiliate_code = serializers.CharField(source="affiliate.code", read_only=True)
    aadhaar_masked = serializers.SerializerMethodField()

    class Meta:
        model = PayoutRequest
        fields = [
            "id",
            "affiliate",
            "affiliate_code",
            "user",
            "month_key",
            "amount",
            "status",
            "account_holder",
            "bank_account",
            "ifsc",
            "bank_name",
            "city",
            "upi_id",
            "pan",
            "aadhaar_masked",
            "payout_reference",
            "utr",
            "notes",
            "reviewed_by",
            "approved_at",
            "paid_at",
            "rejected_at",
            "created_at",
            "updated_at",
        ]

    def get_aadhaar_masked(self, obj: PayoutRequest) -> str:
        digits = obj.aadhaar_number or ""
        return f"XXXXXXXX{digits[-4:]}" if digits else ""


class PayoutRequestFormSerializer(serializers.Serializer):
    """
    Affiliate self-service payout form. All checks run before any state
    changes; errors come back keyed by field.
    """

    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"), required=False)
    month_key = serializers.RegexField(MONTH_KEY_RE, required=False)
    account_holder = serializers.CharField(max_length=255)
    bank_account = serializers.CharField(max_length=34)
    ifsc = serializers.CharField(max_length=11)
    bank_name = serializers.CharField(max_length=100)
    city = serializers.CharField(max_length=100)
    upi_id = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    pan = serializers.CharField(max_length=10, required=False, allow_blank=True, default="")
    aadhaar_number = serializers.CharField(max_length=20)

    def validate_aadhaar_number(self, value: str) -> str:
        digits = re.sub(r"\s+", "", value)
        if not AADHAAR_RE.match(digits):
            raise serializers.ValidationError("Aadhaar number must be exactly 12 digits.")
        return digits

    def validate_ifsc(self, value: str) -> str:
        value = value.strip().upper()
        if not IFSC_RE.match(value):
            raise serializers.ValidationError("IFSC must be 4 letters followed by 7 letters or digits.")
        return value

    def validate_upi_id(self, value: str) -> str:
        value = value.strip()
        if value and not UPI_RE.match(value):
            raise serializers.ValidationError("UPI id must look like name@handle.")
        return value

    def validate_pan(self, value: str) -> str:
        value = value.strip().upper()
        if value and not PAN_RE.match(value):
            raise serializers.ValidationError("PAN must look like ABCDE1234F.")
        return value


class PayoutReviewSerializer(serializers.Serializer):
    payout_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    utr = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    mark_paid = serializers.BooleanField(required=False, default=False)


class PayoutRejectSerializer(serializers.Serializer):
    reason = serializers.CharField()


class CommissionAdjustmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = CommissionAdjustment
        fields = ["id", "affiliate", "month_key", "amount", "note", "created_by", "created_at"]
        read_only_fields = fields


class OrderCompletedEventSerializer(serializers.Serializer):
    orderId = serializers.CharField(source="order_id", max_length=64)
    userId = serializers.CharField(source="user_id", required=False, allow_blank=True, allow_null=True)
    baseAmount = serializers.DecimalField(source="base_amount", max_digits=15, decimal_places=2)
    referralCode = serializers.CharField(source="referral_code", required=False, allow_blank=True, allow_null=True)
    completedAt = serializers.DateTimeField(source="completed_at")
    orderNumber = serializers.CharField(source="order_number", required=False, allow_blank=True, default="")
    clickId = serializers.CharField(source="click_id", required=False, allow_blank=True, default="")

    def to_event(self) -> OrderCompletion:
        data = self.validated_data
        return OrderCompletion(
            order_id=data["order_id"],
            user_id=data.get("user_id") or None,
            base_amount=data["base_amount"],
            completed_at=data["completed_at"],
            referral_code=data.get("referral_code") or None,
            order_number=data.get("order_number") or "",
            click_id=data.get("click_id") or "",
        )


class OrderReversedEventSerializer(serializers.Serializer):
    orderId = serializers.CharField(source="order_id", max_length=64)
    affiliateId = serializers.UUIDField(source="affiliate_id", required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    amount = serializers.DecimalField(
        max_digits=15, decimal_places=2, required=False, allow_null=True, min_value=Decimal("0.01")
    )

    def to_event(self) -> OrderReversal:
        data = self.validated_data
        affiliate_id = data.get("affiliate_id")
        return OrderReversal(
            order_id=data["order_id"],
            affiliate_id=str(affiliate_id) if affiliate_id else None,
            reason=data.get("reason") or "",
            amount=data.get("amount"),
        )
