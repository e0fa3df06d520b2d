import logging

from celery import shared_task
from django.utils import timezone

from apps.affiliates.models import Affiliate
from apps.affiliates.services import roll_over_month

from .calculator import month_key_for
from .serializers import OrderCompletedEventSerializer, OrderReversedEventSerializer
from .services import lock_matured_attributions, reconcile_affiliate, record_attribution, reverse_attribution

logger = logging.getLogger(__name__)


@shared_task
def release_matured_commissions() -> int:
    return lock_matured_attributions(now=timezone.now())


@shared_task
def roll_over_affiliate_months() -> int:
    current = month_key_for()
    rolled = 0
    for affiliate in Affiliate.objects.filter(month_key__lt=current).iterator():
        if roll_over_month(affiliate, current):
            rolled += 1
    return rolled


@shared_task
def reconcile_affiliates() -> int:
    drifted = 0
    for affiliate in Affiliate.objects.all().iterator():
        if reconcile_affiliate(affiliate, apply=True):
            drifted += 1
    if drifted:
        logger.warning("Reconciliation repaired counters on %s affiliates", drifted)
    return drifted


@shared_task
def handle_order_completed(payload: dict) -> str | None:
    serializer = OrderCompletedEventSerializer(data=payload)
    serializer.is_valid(raise_exception=True)
    row, _ = record_attribution(serializer.to_event())
    return str(row.id) if row else None


@shared_task
def handle_order_reversed(payload: dict) -> int:
    serializer = OrderReversedEventSerializer(data=payload)
    serializer.is_valid(raise_exception=True)
    return len(reverse_attribution(serializer.to_event()))
