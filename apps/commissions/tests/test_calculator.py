from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import SimpleTestCase

from apps.commissions.calculator import (
    compute_commission,
    month_key_for,
    normalize_rules,
    resolve_tier_percent,
)

from .helpers import DEFAULT_RULES


class ResolveTierPercentTest(SimpleTestCase):
    def test_mid_band_sales_resolve_to_middle_tier(self):
        self.assertEqual(resolve_tier_percent(DEFAULT_RULES, Decimal("75000")), Decimal("7"))

    def test_threshold_is_inclusive(self):
        self.assertEqual(resolve_tier_percent(DEFAULT_RULES, Decimal("49999.99")), Decimal("5"))
        self.assertEqual(resolve_tier_percent(DEFAULT_RULES, Decimal("50000")), Decimal("7"))
        self.assertEqual(resolve_tier_percent(DEFAULT_RULES, Decimal("100000")), Decimal("10"))
        self.assertEqual(resolve_tier_percent(DEFAULT_RULES, Decimal("2500000")), Decimal("10"))

    def test_no_qualifying_rule_is_zero(self):
        rules = [{"min_monthly_sales": "1000", "percent": "4"}]
        self.assertEqual(resolve_tier_percent(rules, Decimal("999")), Decimal("0"))
        self.assertEqual(resolve_tier_percent([], Decimal("999")), Decimal("0"))
        self.assertEqual(resolve_tier_percent(None, Decimal("999")), Decimal("0"))

    def test_input_order_does_not_matter(self):
        shuffled = [DEFAULT_RULES[2], DEFAULT_RULES[0], DEFAULT_RULES[1]]
        self.assertEqual(resolve_tier_percent(shuffled, Decimal("75000")), Decimal("7"))

    def test_percent_never_decreases_as_sales_grow(self):
        rules = normalize_rules(
            [
                {"min_monthly_sales": 0, "percent": 2},
                {"min_monthly_sales": 10000, "percent": 3.5},
                {"min_monthly_sales": 25000, "percent": 6},
                {"min_monthly_sales": 80000, "percent": 9},
            ]
        )
        previous = Decimal("-1")
        for sales in range(0, 120001, 2500):
            percent = resolve_tier_percent(rules, Decimal(sales))
            self.assertGreaterEqual(percent, previous, f"percent dropped at sales={sales}")
            previous = percent


class ComputeCommissionTest(SimpleTestCase):
    def test_seven_percent_of_thousand(self):
        self.assertEqual(compute_commission(Decimal("1000"), Decimal("7")), Decimal("70.00"))

    def test_rounds_half_up_to_paise(self):
        self.assertEqual(compute_commission(Decimal("0.05"), Decimal("50")), Decimal("0.03"))
        self.assertEqual(compute_commission(Decimal("333.33"), Decimal("7.5")), Decimal("25.00"))

    def test_zero_percent(self):
        self.assertEqual(compute_commission(Decimal("1500"), Decimal("0")), Decimal("0.00"))


class NormalizeRulesTest(SimpleTestCase):
    def test_sorts_and_stores_strings(self):
        rules = normalize_rules(
            [
                {"min_monthly_sales": 100000, "percent": 10},
                {"min_monthly_sales": 0, "percent": 5},
            ]
        )
        self.assertEqual(
            rules,
            [
                {"min_monthly_sales": "0.00", "percent": "5.00"},
                {"min_monthly_sales": "100000.00", "percent": "10.00"},
            ],
        )

    def test_duplicate_threshold_rejected(self):
        with self.assertRaises(ValueError):
            normalize_rules(
                [
                    {"min_monthly_sales": "50000", "percent": "7"},
                    {"min_monthly_sales": "50000.00", "percent": "8"},
                ]
            )

    def test_out_of_range_values_rejected(self):
        with self.assertRaises(ValueError):
            normalize_rules([{"min_monthly_sales": "-1", "percent": "5"}])
        with self.assertRaises(ValueError):
            normalize_rules([{"min_monthly_sales": "0", "percent": "100.01"}])
        with self.assertRaises(ValueError):
            normalize_rules([{"min_monthly_sales": "lots", "percent": "5"}])


class MonthKeyTest(SimpleTestCase):
    def test_bucket_uses_local_time(self):
        # 20:00 UTC on 31 March is already 1 April in Asia/Kolkata.
        moment = datetime(2025, 3, 31, 20, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(month_key_for(moment), "2025-04")

    def test_naive_datetime_is_formatted_directly(self):
        self.assertEqual(month_key_for(datetime(2025, 12, 1)), "2025-12")
