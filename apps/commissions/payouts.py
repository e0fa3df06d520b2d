from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from apps.affiliates.models import Affiliate
from apps.affiliates.services import roll_over_month
from apps.authentication.models import User

from .calculator import CENT, month_key_for
from .exceptions import InvalidPayoutTransition, PayoutEligibilityError, PayoutError
from .models import Attribution, PayoutRequest
from .services import lock_matured_attributions

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

FORM_FIELDS = (
    "account_holder",
    "bank_account",
    "ifsc",
    "bank_name",
    "city",
    "upi_id",
    "pan",
    "aadhaar_number",
)

TRANSITIONS = {
    PayoutRequest.STATUS_REQUESTED: {PayoutRequest.STATUS_APPROVED, PayoutRequest.STATUS_REJECTED},
    PayoutRequest.STATUS_APPROVED: {PayoutRequest.STATUS_PAID},
}


def locked_commission(affiliate: Affiliate, month_key: str) -> Decimal:
    total = Attribution.objects.filter(
        affiliate=affiliate,
        month_key=month_key,
        status=Attribution.STATUS_LOCKED,
    ).aggregate(total=Sum("commission_amount"))["total"]
    return (total or ZERO).quantize(CENT)


def eligible_balance(affiliate: Affiliate, month_key: str) -> Decimal:
    requested = (
        PayoutRequest.objects.filter(affiliate=affiliate, month_key=month_key)
        .exclude(status=PayoutRequest.STATUS_REJECTED)
        .aggregate(total=Sum("amount"))["total"]
    )
    return max(locked_commission(affiliate, month_key) - (requested or ZERO), ZERO).quantize(CENT)


def live_payout_request(affiliate: Affiliate, month_key: str) -> Optional[PayoutRequest]:
    return (
        PayoutRequest.objects.filter(affiliate=affiliate, month_key=month_key)
        .exclude(status=PayoutRequest.STATUS_REJECTED)
        .first()
    )


def submit_payout_request(
    affiliate: Affiliate,
    user: User,
    form: Mapping[str, Any],
    amount: Optional[Decimal] = None,
    month_key: Optional[str] = None,
) -> tuple[PayoutRequest, bool]:
    """
    Create the payout request for ``month_key`` (default: the current month).

    Returns ``(payout, created)``. When a non-rejected request already exists
    for the affiliate and month, that request is returned with
    ``created=False``, including when a concurrent submission wins the insert.
    """
    if not affiliate.is_active:
        raise PayoutError("Affiliate account is inactive")

    roll_over_month(affiliate, month_key_for())
    lock_matured_attributions(affiliate=affiliate)
    month_key = month_key or affiliate.month_key

    existing = live_payout_request(affiliate, month_key)
    if existing:
        return existing, False

    eligible = eligible_balance(affiliate, month_key)
    if eligible <= 0:
        raise PayoutEligibilityError("No locked commission available for payout", eligible)
    if amount is None:
        amount = eligible
    amount = Decimal(str(amount))
    if amount <= 0:
        raise PayoutEligibilityError("Payout amount must be positive", eligible)
    if amount > eligible:
        raise PayoutEligibilityError("Requested amount exceeds eligible commission", eligible)

    try:
        with transaction.atomic():
            payout = PayoutRequest.objects.create(
                affiliate=affiliate,
                user=user,
                month_key=month_key,
                amount=amount,
                status=PayoutRequest.STATUS_REQUESTED,
                **{field: form.get(field) or "" for field in FORM_FIELDS},
            )
    except IntegrityError:
        winner = live_payout_request(affiliate, month_key)
        if winner is None:
            raise
        logger.info("Concurrent payout request for %s/%s resolved to %s", affiliate.code, month_key, winner.pk)
        return winner, False

    logger.info("Payout requested: affiliate=%s month=%s amount=%s", affiliate.code, month_key, amount)
    return payout, True


def _transition(payout: PayoutRequest, target: str, **fields: Any) -> PayoutRequest:
    current = payout.status
    if target not in TRANSITIONS.get(current, set()):
        raise InvalidPayoutTransition(current, target)

    fields["updated_at"] = timezone.now()
    changed = PayoutRequest.objects.filter(pk=payout.pk, status=current).update(status=target, **fields)
    if not changed:
        payout.refresh_from_db()
        raise InvalidPayoutTransition(payout.status, target)

    payout.refresh_from_db()
    logger.info("Payout %s moved %s -> %s", payout.pk, current, target)
    return payout


def approve_payout(
    payout: PayoutRequest,
    reviewer: Optional[User] = None,
    payout_reference: str = "",
    utr: str = "",
    notes: str = "",
) -> PayoutRequest:
    fields: dict[str, Any] = {"reviewed_by": reviewer, "approved_at": timezone.now()}
    if payout_reference:
        fields["payout_reference"] = payout_reference
    if utr:
        fields["utr"] = utr
    if notes:
        fields["notes"] = notes
    return _transition(payout, PayoutRequest.STATUS_APPROVED, **fields)


def settle_payout(
    payout: PayoutRequest,
    reviewer: Optional[User] = None,
    utr: str = "",
    payout_reference: str = "",
) -> PayoutRequest:
    if payout.status == PayoutRequest.STATUS_APPROVED and not (
        utr or payout_reference or payout.utr or payout.payout_reference
    ):
        raise PayoutError("A UTR or payout reference is required to mark a payout paid")

    fields: dict[str, Any] = {"paid_at": timezone.now()}
    if reviewer is not None:
        fields["reviewed_by"] = reviewer
    if utr:
        fields["utr"] = utr
    if payout_reference:
        fields["payout_reference"] = payout_reference
    return _transition(payout, PayoutRequest.STATUS_PAID, **fields)


def reject_payout(payout: PayoutRequest, reviewer: Optional[User] = None, reason: str = "") -> PayoutRequest:
    return _transition(
        payout,
        PayoutRequest.STATUS_REJECTED,
        reviewed_by=reviewer,
        rejected_at=timezone.now(),
        notes=reason or "Rejected by admin",
    )
