from decimal import Decimal

from rest_framework import serializers

from apps.commissions.calculator import month_key_for, normalize_rules
from apps.commissions.serializers import MONTH_KEY_RE

from .models import Affiliate


class CommissionRuleSerializer(serializers.Serializer):
    min_monthly_sales = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0"))
    percent = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
    )


class CommissionRulesUpdateSerializer(serializers.Serializer):
    """
    Replaces an affiliate's whole tier table. Thresholds must be unique;
    the stored table is sorted ascending regardless of input order.
    """

    rules = CommissionRuleSerializer(many=True, allow_empty=False)

    def validate_rules(self, value):
        try:
            return normalize_rules(value)
        except ValueError as exc:
            raise serializers.ValidationError(str(exc))


class AffiliateSerializer(serializers.ModelSerializer):
    user_email = serializers.CharField(source="user.email", read_only=True)
    user_name = serializers.CharField(source="user.full_name", read_only=True)

    class Meta:
        model = Affiliate
        fields = [
            "id",
            "user",
            "user_email",
            "user_name",
            "code",
            "is_active",
            "rules",
            "month_key",
            "month_sales",
            "month_orders",
            "month_commission_accrued",
            "lifetime_sales",
            "lifetime_commission",
            "fund_account_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CommissionAdjustmentInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    note = serializers.CharField()
    month_key = serializers.RegexField(MONTH_KEY_RE, required=False)

    def validate_amount(self, value: Decimal) -> Decimal:
        if value == 0:
            raise serializers.ValidationError("Adjustment amount must be non-zero.")
        return value

    def validate_month_key(self, value: str) -> str:
        if value > month_key_for():
            raise serializers.ValidationError("Cannot adjust a month that has not started.")
        return value


class AffiliateActiveSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()


class ReferralVisitSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)
