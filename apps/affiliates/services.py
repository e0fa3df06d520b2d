from __future__ import annotations

import logging
import secrets
import string
from typing import Any, Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import HttpRequest
from django.utils import timezone

from apps.authentication.models import User
from apps.commissions.calculator import month_key_for, normalize_rules

from .models import Affiliate

logger = logging.getLogger(__name__)

ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_COOKIE = "aff_code"
CLICK_COOKIE = "aff_click"


def generate_affiliate_code(length: Optional[int] = None) -> str:
    length = length or getattr(settings, "AFFILIATE_CODE_LENGTH", 8)
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def enroll_affiliate(user: User) -> tuple[Affiliate, bool]:
    existing = Affiliate.objects.filter(user=user).first()
    if existing:
        return existing, False

    rules = normalize_rules(getattr(settings, "AFFILIATE_DEFAULT_RULES", []))

    for _ in range(5):
        code = generate_affiliate_code()
        try:
            with transaction.atomic():
                affiliate = Affiliate.objects.create(
                    user=user,
                    code=code,
                    rules=rules,
                    month_key=month_key_for(),
                )
            logger.info("Enrolled affiliate %s for user %s", affiliate.code, user.pk)
            return affiliate, True
        except IntegrityError:
            # Either the code collided or a concurrent enrollment won the user slot.
            winner = Affiliate.objects.filter(user=user).first()
            if winner:
                return winner, False
            continue
    raise RuntimeError("Failed to generate unique affiliate code")


def set_commission_rules(affiliate: Affiliate, rules: Iterable[Any]) -> Affiliate:
    affiliate.rules = normalize_rules(rules)
    affiliate.save(update_fields=["rules", "updated_at"])
    logger.info("Updated commission rules for affiliate %s: %s", affiliate.code, affiliate.rules)
    return affiliate


def set_affiliate_active(affiliate: Affiliate, is_active: bool) -> Affiliate:
    affiliate.is_active = is_active
    affiliate.save(update_fields=["is_active", "updated_at"])
    logger.info("Affiliate %s is_active=%s", affiliate.code, is_active)
    return affiliate


def roll_over_month(affiliate: Affiliate, month_key: str) -> bool:
    """
    Move the affiliate's counters to a newer ``month_key`` bucket.

    A conditional UPDATE, so concurrent callers race to the same result and
    an older key never rewinds the bucket.
    """
    updated = Affiliate.objects.filter(pk=affiliate.pk, month_key__lt=month_key).update(
        month_key=month_key,
        month_sales=0,
        month_orders=0,
        month_commission_accrued=0,
        updated_at=timezone.now(),
    )
    if updated:
        logger.info("Affiliate %s rolled over to %s", affiliate.code, month_key)
    affiliate.refresh_from_db(
        fields=["month_key", "month_sales", "month_orders", "month_commission_accrued"]
    )
    return bool(updated)


def active_affiliate_for_code(code: Optional[str]) -> Optional[Affiliate]:
    code = (code or "").strip()
    if not code:
        return None
    return Affiliate.objects.filter(code=code, is_active=True).first()


def referral_code_from_request(request: HttpRequest) -> Optional[str]:
    param = getattr(settings, "AFFILIATE_REFERRAL_PARAM", "aff")
    code = (request.GET.get(param) or "").strip()
    if code:
        return code
    return request.COOKIES.get(REFERRAL_COOKIE) or None


def build_referral_link(url: str, code: str) -> str:
    param = getattr(settings, "AFFILIATE_REFERRAL_PARAM", "aff")
    parts = urlsplit(url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != param]
    query.append((param, code))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
