from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from django.utils import timezone as dj_timezone

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def _rule_value(rule: Any, name: str) -> Any:
    if isinstance(rule, dict):
        return rule.get(name)
    return getattr(rule, name, None)


def resolve_tier_percent(rules: Iterable[Any] | None, monthly_sales: Decimal | int | str) -> Decimal:
    """
    Return the commission percent for ``monthly_sales``.

    The winning rule is the one with the highest ``min_monthly_sales`` that is
    still <= the sales figure. No qualifying rule (or no rules) means 0%.
    """
    sales = _to_decimal(monthly_sales)
    best_threshold: Decimal | None = None
    percent = Decimal("0")
    for rule in rules or ():
        threshold = _to_decimal(_rule_value(rule, "min_monthly_sales"))
        if threshold > sales:
            continue
        if best_threshold is None or threshold > best_threshold:
            best_threshold = threshold
            percent = _to_decimal(_rule_value(rule, "percent"))
    return percent


def compute_commission(base_amount: Decimal, percent: Decimal) -> Decimal:
    amount = _to_decimal(base_amount) * _to_decimal(percent) / HUNDRED
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_rules(rules: Iterable[Any]) -> list[dict[str, str]]:
    """
    Validate a tier table and return it sorted ascending by threshold.

    Thresholds must be unique and non-negative; percents must lie in 0..100.
    Values are stored as decimal strings so they round-trip through JSON
    without float drift.
    """
    normalized: list[tuple[Decimal, Decimal]] = []
    seen: set[Decimal] = set()
    for rule in rules:
        threshold = _to_decimal(_rule_value(rule, "min_monthly_sales")).quantize(CENT)
        percent = _to_decimal(_rule_value(rule, "percent")).quantize(CENT)
        if threshold < 0:
            raise ValueError("min_monthly_sales cannot be negative")
        if percent < 0 or percent > HUNDRED:
            raise ValueError("percent must be between 0 and 100")
        if threshold in seen:
            raise ValueError(f"Duplicate tier threshold: {threshold}")
        seen.add(threshold)
        normalized.append((threshold, percent))

    normalized.sort(key=lambda pair: pair[0])
    return [
        {"min_monthly_sales": str(threshold), "percent": str(percent)}
        for threshold, percent in normalized
    ]


def month_key_for(moment: datetime | None = None) -> str:
    moment = moment or dj_timezone.now()
    if dj_timezone.is_aware(moment):
        moment = dj_timezone.localtime(moment)
    return moment.strftime("%Y-%m")
