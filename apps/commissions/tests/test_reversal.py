from datetime import timedelta
from decimal import Decimal

from django.test import TestCase

from apps.affiliates.services import roll_over_month
from apps.commissions.models import Attribution, PartialReversal
from apps.commissions.payouts import locked_commission
from apps.commissions.services import (
    _reverse_row,
    lock_matured_attributions,
    reconcile_affiliate,
    record_attribution,
    reverse_attribution,
)

from .helpers import completion, local_dt, make_affiliate, make_user, reversal


class ReverseAttributionTest(TestCase):
    def setUp(self):
        self.affiliate = make_affiliate(make_user("asha@example.com"))

    def test_open_row_reversal_leaves_lifetime_commission(self):
        row, _ = record_attribution(completion("ORD-1", "1000"))
        record_attribution(completion("ORD-2", "400"))

        reversed_rows = reverse_attribution(reversal("ORD-1", reason="returned"))

        self.assertEqual([r.pk for r in reversed_rows], [row.pk])
        row.refresh_from_db()
        self.assertEqual(row.status, Attribution.STATUS_REVERSED)
        self.assertEqual(row.reversal_reason, "returned")
        self.assertIsNotNone(row.reversed_at)

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("0"))
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("20.00"))
        self.assertEqual(self.affiliate.month_sales, Decimal("400"))
        self.assertEqual(self.affiliate.month_orders, 1)
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("400"))

    def test_locked_row_from_prior_month_only_touches_lifetime(self):
        row, _ = record_attribution(completion("ORD-MAR", "1000"))
        lock_matured_attributions(now=row.holdback_until + timedelta(seconds=1))

        roll_over_month(self.affiliate, "2025-04")
        record_attribution(completion("ORD-APR", "2000", at=local_dt(2025, 4, 5, 10, 0)))
        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("50.00"))

        reverse_attribution(reversal("ORD-MAR", reason="chargeback"))

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("0.00"))
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("2000"))
        self.assertEqual(self.affiliate.month_key, "2025-04")
        self.assertEqual(self.affiliate.month_sales, Decimal("2000"))
        self.assertEqual(self.affiliate.month_orders, 1)
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("100.00"))

    def test_locked_row_in_current_month_reduces_both(self):
        row, _ = record_attribution(completion("ORD-1", "1000"))
        lock_matured_attributions(now=row.holdback_until)

        reverse_attribution(reversal("ORD-1"))

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("0.00"))
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("0.00"))
        self.assertEqual(self.affiliate.month_orders, 0)

    def test_reversal_is_terminal_and_idempotent(self):
        record_attribution(completion("ORD-1", "1000"))
        reverse_attribution(reversal("ORD-1"))

        self.assertEqual(reverse_attribution(reversal("ORD-1")), [])
        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.month_orders, 0)
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("0"))

        # A reversed row is not picked up by the lock sweep.
        self.assertEqual(lock_matured_attributions(now=local_dt(2026, 1, 1)), 0)

    def test_unknown_order_is_a_no_op(self):
        self.assertEqual(reverse_attribution(reversal("ORD-MISSING")), [])

    def test_affiliate_filter_limits_reversal(self):
        other = make_affiliate(make_user("meera@example.com"), code="MEERA001")
        record_attribution(completion("ORD-1", "1000"))
        record_attribution(completion("ORD-1", "1000", code=other.code))

        rows = reverse_attribution(reversal("ORD-1", affiliate_id=str(other.pk)))

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].affiliate_id, other.pk)
        self.assertEqual(
            Attribution.objects.get(affiliate=self.affiliate, order_id="ORD-1").status,
            Attribution.STATUS_OPEN,
        )

    def test_stale_instance_follows_concurrent_lock(self):
        row, _ = record_attribution(completion("ORD-1", "1000"))
        stale = Attribution.objects.get(pk=row.pk)
        lock_matured_attributions(now=row.holdback_until)

        self.assertTrue(_reverse_row(stale, "cancelled"))

        # The sweep won the race, so the reversal must take back the locked credit.
        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("0.00"))
        stale.refresh_from_db()
        self.assertEqual(stale.status, Attribution.STATUS_REVERSED)


class PartialReversalTest(TestCase):
    def setUp(self):
        self.affiliate = make_affiliate(make_user("asha@example.com"))
        self.row, _ = record_attribution(completion("ORD-1", "1000"))

    def test_open_row_keeps_remainder_until_lock(self):
        rows = reverse_attribution(reversal("ORD-1", reason="one item returned", amount=Decimal("200")))

        self.assertEqual([r.pk for r in rows], [self.row.pk])
        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Attribution.STATUS_OPEN)
        self.assertEqual(self.row.base_amount, Decimal("800.00"))
        self.assertEqual(self.row.commission_amount, Decimal("40.00"))
        part = PartialReversal.objects.get()
        self.assertEqual(part.attribution_id, self.row.pk)
        self.assertEqual(part.base_amount, Decimal("200.00"))
        self.assertEqual(part.commission_amount, Decimal("10.00"))
        self.assertEqual(part.reason, "one item returned")

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.month_sales, Decimal("800"))
        self.assertEqual(self.affiliate.month_orders, 1)
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("40.00"))
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("800"))
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("0"))

        lock_matured_attributions(now=self.row.holdback_until)

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("40.00"))
        self.assertEqual(reconcile_affiliate(self.affiliate, apply=False), {})

    def test_locked_row_gives_back_locked_commission(self):
        lock_matured_attributions(now=self.row.holdback_until)

        reverse_attribution(reversal("ORD-1", amount=Decimal("300")))

        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Attribution.STATUS_LOCKED)
        self.assertEqual(self.row.commission_amount, Decimal("35.00"))
        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("35.00"))
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("35.00"))
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("700"))
        self.assertEqual(locked_commission(self.affiliate, "2025-03"), Decimal("35.00"))
        self.assertEqual(reconcile_affiliate(self.affiliate, apply=False), {})

    def test_prior_month_row_only_touches_lifetime(self):
        lock_matured_attributions(now=self.row.holdback_until)
        roll_over_month(self.affiliate, "2025-04")
        record_attribution(completion("ORD-APR", "2000", at=local_dt(2025, 4, 5, 10, 0)))

        reverse_attribution(reversal("ORD-1", amount=Decimal("100")))

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("2900"))
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("45.00"))
        self.assertEqual(self.affiliate.month_sales, Decimal("2000"))
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("100.00"))
        self.assertEqual(reconcile_affiliate(self.affiliate, apply=False), {})

    def test_amount_covering_the_remainder_reverses_the_row(self):
        reverse_attribution(reversal("ORD-1", amount=Decimal("400")))
        reverse_attribution(reversal("ORD-1", reason="rest returned", amount=Decimal("600")))

        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Attribution.STATUS_REVERSED)
        self.assertEqual(self.row.reversal_reason, "rest returned")
        self.assertEqual(PartialReversal.objects.count(), 1)
        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.month_orders, 0)
        self.assertEqual(self.affiliate.month_sales, Decimal("0"))
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("0.00"))
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("0"))

    def test_full_reversal_after_partial_takes_the_rest(self):
        lock_matured_attributions(now=self.row.holdback_until)
        reverse_attribution(reversal("ORD-1", amount=Decimal("250")))

        reverse_attribution(reversal("ORD-1", reason="cancelled"))

        self.affiliate.refresh_from_db()
        self.assertEqual(self.affiliate.lifetime_sales, Decimal("0"))
        self.assertEqual(self.affiliate.lifetime_commission, Decimal("0.00"))
        self.assertEqual(self.affiliate.month_commission_accrued, Decimal("0.00"))
        self.assertEqual(reconcile_affiliate(self.affiliate, apply=False), {})

    def test_partial_on_reversed_row_is_a_no_op(self):
        reverse_attribution(reversal("ORD-1"))

        self.assertEqual(reverse_attribution(reversal("ORD-1", amount=Decimal("10"))), [])
        self.assertFalse(PartialReversal.objects.exists())

    def test_amount_must_be_positive(self):
        with self.assertRaises(ValueError):
            reverse_attribution(reversal("ORD-1", amount=Decimal("0")))
        self.assertFalse(PartialReversal.objects.exists())
