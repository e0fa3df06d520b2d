from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Sum
from django.utils import timezone

from apps.affiliates.models import Affiliate
from apps.affiliates.services import active_affiliate_for_code, roll_over_month
from apps.authentication.models import User

from .calculator import CENT, compute_commission, month_key_for, resolve_tier_percent
from .events import OrderCompletion, OrderReversal
from .models import Attribution, CommissionAdjustment, PartialReversal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def return_window() -> timedelta:
    return timedelta(days=int(getattr(settings, "AFFILIATE_RETURN_WINDOW_DAYS", 7)))


def _existing_attribution(affiliate: Affiliate, order_id: str) -> Optional[Attribution]:
    return Attribution.objects.filter(affiliate=affiliate, order_id=order_id).first()


def _resolve_user(user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    try:
        return User.objects.filter(pk=user_id).first()
    except (ValueError, ValidationError):
        logger.warning("Order event references unknown user id %r", user_id)
        return None


def _trailing_sales(affiliate: Affiliate, month_key: str) -> Decimal:
    if month_key == affiliate.month_key:
        return affiliate.month_sales
    # Late event for a closed period: the live counters belong to another month.
    total = (
        Attribution.objects.filter(affiliate=affiliate, month_key=month_key)
        .exclude(status=Attribution.STATUS_REVERSED)
        .aggregate(total=Sum("base_amount"))["total"]
    )
    return total or ZERO


def record_attribution(event: OrderCompletion) -> tuple[Optional[Attribution], bool]:
    """
    Credit a completed order to the affiliate behind ``event.referral_code``.

    Returns ``(row, created)``. Orders without an active referrer return
    ``(None, False)``. Redelivery of the same order returns the row that is
    already on the ledger with ``created=False`` and leaves counters alone.
    """
    affiliate = active_affiliate_for_code(event.referral_code)
    if affiliate is None:
        logger.debug("Order %s has no active referrer (code=%r)", event.order_id, event.referral_code)
        return None, False

    existing = _existing_attribution(affiliate, event.order_id)
    if existing:
        return existing, False

    month_key = month_key_for(event.completed_at)
    base_amount = max(Decimal(str(event.base_amount)), ZERO)

    with transaction.atomic():
        roll_over_month(affiliate, month_key)
        percent = resolve_tier_percent(affiliate.rules, _trailing_sales(affiliate, month_key))
        commission_amount = compute_commission(base_amount, percent)

        user = _resolve_user(event.user_id)

        try:
            with transaction.atomic():
                row = Attribution.objects.create(
                    affiliate=affiliate,
                    order_id=event.order_id,
                    order_number=event.order_number or "",
                    click_id=event.click_id or "",
                    user=user,
                    month_key=month_key,
                    base_amount=base_amount,
                    commission_percent=percent,
                    commission_amount=commission_amount,
                    status=Attribution.STATUS_OPEN,
                    completed_at=event.completed_at,
                    holdback_until=event.completed_at + return_window(),
                )
        except IntegrityError:
            row = Attribution.objects.get(affiliate=affiliate, order_id=event.order_id)
            logger.info("Duplicate delivery for order %s ignored", event.order_id)
            return row, False

        Affiliate.objects.filter(pk=affiliate.pk).update(
            lifetime_sales=F("lifetime_sales") + base_amount,
            updated_at=timezone.now(),
        )
        Affiliate.objects.filter(pk=affiliate.pk, month_key=month_key).update(
            month_sales=F("month_sales") + base_amount,
            month_orders=F("month_orders") + 1,
            month_commission_accrued=F("month_commission_accrued") + commission_amount,
        )

    logger.info(
        "Attributed order %s to %s: base=%s percent=%s commission=%s",
        event.order_id,
        affiliate.code,
        base_amount,
        percent,
        commission_amount,
    )
    return row, True


def _reverse_row(row: Attribution, reason: str) -> bool:
    with transaction.atomic():
        current = Attribution.objects.select_for_update().get(pk=row.pk)
        previous = current.status
        if previous == Attribution.STATUS_REVERSED:
            return False

        now = timezone.now()
        changed = Attribution.objects.filter(pk=row.pk, status=previous).update(
            status=Attribution.STATUS_REVERSED,
            reversal_reason=reason,
            reversed_at=now,
        )
        if not changed:
            # Someone moved the row first (lock sweep or another reversal).
            return _reverse_row(row, reason)

        lifetime = {"lifetime_sales": F("lifetime_sales") - current.base_amount, "updated_at": now}
        if previous == Attribution.STATUS_LOCKED:
            lifetime["lifetime_commission"] = F("lifetime_commission") - current.commission_amount
        Affiliate.objects.filter(pk=current.affiliate_id).update(**lifetime)
        Affiliate.objects.filter(pk=current.affiliate_id, month_key=current.month_key).update(
            month_sales=F("month_sales") - current.base_amount,
            month_orders=F("month_orders") - 1,
            month_commission_accrued=F("month_commission_accrued") - current.commission_amount,
        )

    row.base_amount = current.base_amount
    row.commission_amount = current.commission_amount
    row.status = Attribution.STATUS_REVERSED
    row.reversal_reason = reason
    row.reversed_at = now
    logger.info("Reversed attribution for order %s (was %s): %s", row.order_id, previous, reason or "-")
    return True


def _reverse_part(row: Attribution, amount: Decimal, reason: str) -> bool:
    """
    Take ``amount`` of sales off ``row`` and record it as a ``PartialReversal``.

    The row keeps its status and the remaining base and commission. An amount
    that covers the whole remaining base reverses the row outright.
    """
    with transaction.atomic():
        current = Attribution.objects.select_for_update().get(pk=row.pk)
        if current.status == Attribution.STATUS_REVERSED:
            return False
        if amount >= current.base_amount:
            return _reverse_row(row, reason)

        commission = min(compute_commission(amount, current.commission_percent), current.commission_amount)
        now = timezone.now()
        Attribution.objects.filter(pk=current.pk).update(
            base_amount=F("base_amount") - amount,
            commission_amount=F("commission_amount") - commission,
        )
        PartialReversal.objects.create(
            attribution=current,
            base_amount=amount,
            commission_amount=commission,
            reason=reason,
        )

        lifetime = {"lifetime_sales": F("lifetime_sales") - amount, "updated_at": now}
        if current.status == Attribution.STATUS_LOCKED:
            lifetime["lifetime_commission"] = F("lifetime_commission") - commission
        Affiliate.objects.filter(pk=current.affiliate_id).update(**lifetime)
        Affiliate.objects.filter(pk=current.affiliate_id, month_key=current.month_key).update(
            month_sales=F("month_sales") - amount,
            month_commission_accrued=F("month_commission_accrued") - commission,
        )

    row.refresh_from_db()
    logger.info(
        "Partially reversed order %s by %s (commission %s, %s): %s",
        row.order_id,
        amount,
        commission,
        row.status,
        reason or "-",
    )
    return True


def reverse_attribution(event: OrderReversal) -> list[Attribution]:
    """
    Reverse the attributions for ``event.order_id``.

    Without ``event.amount`` every live row for the order is reversed. With a
    positive amount only that much of each row's sales is taken back.
    """
    amount = None
    if event.amount is not None:
        amount = Decimal(str(event.amount)).quantize(CENT)
        if amount <= 0:
            raise ValueError("Reversal amount must be positive")

    qs = Attribution.objects.filter(order_id=event.order_id)
    if event.affiliate_id:
        qs = qs.filter(affiliate_id=event.affiliate_id)

    reversed_rows: list[Attribution] = []
    for row in qs:
        if amount is None:
            done = _reverse_row(row, event.reason or "")
        else:
            done = _reverse_part(row, amount, event.reason or "")
        if done:
            reversed_rows.append(row)
    if not reversed_rows:
        logger.debug("Nothing to reverse for order %s", event.order_id)
    return reversed_rows


def lock_matured_attributions(now: Optional[datetime] = None, affiliate: Optional[Affiliate] = None) -> int:
    now = now or timezone.now()
    qs = Attribution.objects.filter(status=Attribution.STATUS_OPEN, holdback_until__lte=now)
    if affiliate is not None:
        qs = qs.filter(affiliate=affiliate)

    locked = 0
    for pk in list(qs.values_list("pk", flat=True)):
        with transaction.atomic():
            row = (
                Attribution.objects.select_for_update()
                .filter(pk=pk, status=Attribution.STATUS_OPEN)
                .only("id", "affiliate_id", "commission_amount")
                .first()
            )
            if row is None:
                continue
            changed = Attribution.objects.filter(pk=pk, status=Attribution.STATUS_OPEN).update(
                status=Attribution.STATUS_LOCKED,
                locked_at=now,
            )
            if not changed:
                continue
            Affiliate.objects.filter(pk=row.affiliate_id).update(
                lifetime_commission=F("lifetime_commission") + row.commission_amount,
                updated_at=now,
            )
        locked += 1

    if locked:
        logger.info("Locked %s matured attributions", locked)
    return locked


def adjust_commission(
    affiliate: Affiliate,
    amount: Decimal,
    note: str,
    created_by: Optional[User] = None,
    month_key: Optional[str] = None,
) -> CommissionAdjustment:
    amount = Decimal(str(amount))
    if amount == 0:
        raise ValueError("Adjustment amount must be non-zero")
    if not (note or "").strip():
        raise ValueError("An audit note is required")

    month_key = month_key or affiliate.month_key
    if month_key > affiliate.month_key:
        # Counters only carry the live month; a later bucket would be zeroed on rollover.
        raise ValueError(f"Cannot adjust {month_key} ahead of the current month {affiliate.month_key}")
    with transaction.atomic():
        adjustment = CommissionAdjustment.objects.create(
            affiliate=affiliate,
            month_key=month_key,
            amount=amount,
            note=note.strip(),
            created_by=created_by,
        )
        Affiliate.objects.filter(pk=affiliate.pk).update(
            lifetime_commission=F("lifetime_commission") + amount,
            updated_at=timezone.now(),
        )
        Affiliate.objects.filter(pk=affiliate.pk, month_key=month_key).update(
            month_commission_accrued=F("month_commission_accrued") + amount,
        )

    logger.info(
        "Manual adjustment %s for affiliate %s (%s) by %s: %s",
        amount,
        affiliate.code,
        month_key,
        getattr(created_by, "pk", None),
        adjustment.note,
    )
    affiliate.refresh_from_db()
    return adjustment


COUNTER_FIELDS = (
    "month_sales",
    "month_orders",
    "month_commission_accrued",
    "lifetime_sales",
    "lifetime_commission",
)


def ledger_totals(affiliate: Affiliate) -> dict[str, Decimal | int]:
    live = Attribution.objects.filter(affiliate=affiliate).exclude(status=Attribution.STATUS_REVERSED)
    month = live.filter(month_key=affiliate.month_key).aggregate(
        sales=Sum("base_amount"),
        orders=Count("id"),
        commission=Sum("commission_amount"),
    )
    adjustments = CommissionAdjustment.objects.filter(affiliate=affiliate)
    month_adjustments = adjustments.filter(month_key=affiliate.month_key).aggregate(total=Sum("amount"))["total"]
    all_adjustments = adjustments.aggregate(total=Sum("amount"))["total"]
    lifetime_sales = live.aggregate(total=Sum("base_amount"))["total"]
    locked_commission = live.filter(status=Attribution.STATUS_LOCKED).aggregate(
        total=Sum("commission_amount")
    )["total"]

    return {
        "month_sales": (month["sales"] or ZERO).quantize(CENT),
        "month_orders": month["orders"] or 0,
        "month_commission_accrued": ((month["commission"] or ZERO) + (month_adjustments or ZERO)).quantize(CENT),
        "lifetime_sales": (lifetime_sales or ZERO).quantize(CENT),
        "lifetime_commission": ((locked_commission or ZERO) + (all_adjustments or ZERO)).quantize(CENT),
    }


def reconcile_affiliate(affiliate: Affiliate, apply: bool = True) -> dict[str, dict[str, str]]:
    """
    Recompute the denormalized counters from the ledger and report drift.

    Returns ``{field: {"stored": ..., "ledger": ...}}`` for every field that
    disagrees. With ``apply=True`` the stored counters are overwritten.
    """
    with transaction.atomic():
        affiliate = Affiliate.objects.select_for_update().get(pk=affiliate.pk)
        expected = ledger_totals(affiliate)
        drift: dict[str, dict[str, str]] = {}
        for field in COUNTER_FIELDS:
            stored = getattr(affiliate, field)
            if stored != expected[field]:
                drift[field] = {"stored": str(stored), "ledger": str(expected[field])}
                logger.warning(
                    "Counter drift on affiliate %s: %s stored=%s ledger=%s",
                    affiliate.code,
                    field,
                    stored,
                    expected[field],
                )

        if drift and apply:
            for field in drift:
                setattr(affiliate, field, expected[field])
            affiliate.save(update_fields=[*drift.keys(), "updated_at"])
    return drift
