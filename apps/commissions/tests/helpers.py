from datetime import datetime
from decimal import Decimal

from django.utils import timezone

from apps.affiliates.models import Affiliate
from apps.authentication.models import User
from apps.commissions.calculator import normalize_rules
from apps.commissions.events import OrderCompletion, OrderReversal

DEFAULT_RULES = [
    {"min_monthly_sales": "0", "percent": "5"},
    {"min_monthly_sales": "50000", "percent": "7"},
    {"min_monthly_sales": "100000", "percent": "10"},
]

BANK_FORM = {
    "account_holder": "Asha Rao",
    "bank_account": "50100012345678",
    "ifsc": "HDFC0001234",
    "bank_name": "HDFC Bank",
    "city": "Pune",
    "upi_id": "asha@okhdfc",
    "pan": "ABCDE1234F",
    "aadhaar_number": "123456789012",
}


def make_user(email: str, role: str = "customer") -> User:
    return User.objects.create_user(email=email, password="s3cret-pass", full_name=email.split("@")[0], role=role)


def make_affiliate(user: User, code: str = "ASHA2025", month_key: str = "2025-03", **extra) -> Affiliate:
    extra.setdefault("rules", normalize_rules(DEFAULT_RULES))
    return Affiliate.objects.create(user=user, code=code, month_key=month_key, **extra)


def local_dt(*args) -> datetime:
    return timezone.make_aware(datetime(*args))


def completion(order_id: str, amount, code: str = "ASHA2025", at: datetime | None = None, **extra) -> OrderCompletion:
    return OrderCompletion(
        order_id=order_id,
        user_id=extra.pop("user_id", None),
        base_amount=Decimal(str(amount)),
        completed_at=at or local_dt(2025, 3, 10, 12, 0),
        referral_code=code,
        **extra,
    )


def reversal(order_id: str, **extra) -> OrderReversal:
    return OrderReversal(order_id=order_id, **extra)
