"""Scarcity-driven price computation."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Union

from core import PricingRules


RulesInput = Union[PricingRules, Mapping[str, Any], None]


def _as_rules(rules: RulesInput) -> PricingRules:
    if isinstance(rules, PricingRules):
        return rules
    return PricingRules(**dict(rules or {}))


def _number(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def clamp(value: float, min_price: float = 0.0, max_price: float = 0.0) -> float:
    """Clamp into [min_price, max_price]; a non-positive max means no ceiling."""
    lo = _number(min_price)
    hi = _number(max_price)
    if hi > 0:
        return max(lo, min(hi, value))
    return max(lo, value)


def _cents(value: float) -> float:
    """Two decimals, ties away from zero on the exact binary value."""
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def apply_rounding(price: float, rule: str = "nearest_0.99") -> float:
    p = _number(price)
    if rule == "nearest_0.99":
        rounded = math.floor(p + 0.5)
        base = rounded if rounded >= p else rounded + 1
        return _cents(base - 0.01)
    return _cents(p)


def _fit_bounds(price: float, clamped: float, min_price: float, max_price: float, rule: str) -> float:
    """Pull a rounded price back inside the bounds, keeping the .99 ending when one fits."""
    lo = _number(min_price)
    hi = _number(max_price)
    if hi > 0 and price > hi:
        price = math.floor(hi + 0.01) - 0.01 if rule == "nearest_0.99" else math.floor(hi * 100) / 100
    if price < lo:
        price = math.ceil(lo + 0.01) - 0.01 if rule == "nearest_0.99" else math.ceil(lo * 100) / 100
    if price < lo or (hi > 0 and price > hi):
        return clamped
    return _cents(price)


def compute_price(
    base_price: float,
    hits: int,
    allowed_vendor_count: int,
    rules: RulesInput = None,
) -> float:
    """
    Compute the catalog price for one item.

    Zero configured vendors or zero hits is always priced as scarce
    (full markup). With hits, the markup scales with the fraction of vendors
    that did not list the item when ``scale_by_scarcity`` is on, otherwise
    the base price is kept. The result is clamped and then rounded; when
    rounding crosses a bound the nearest in-range price with the same
    ending is used, or the clamped price when no such price exists.

    Args:
        base_price: reference price of the item
        hits: number of vendors listing the item
        allowed_vendor_count: number of enabled vendors searched
        rules: PricingRules (or a mapping of its fields); defaults apply

    Returns:
        Final price with two decimals
    """
    policy = _as_rules(rules)
    price = _number(base_price)
    count = max(0, int(_number(allowed_vendor_count)))
    found = max(0, min(count, int(_number(hits))))

    if count == 0 or found == 0:
        price *= 1 + policy.markup_unavailable
    elif policy.scale_by_scarcity:
        scarcity = 1 - max(0.0, min(1.0, found / count))
        price *= 1 + policy.markup_unavailable * scarcity

    clamped = clamp(price, policy.min_price, policy.max_price)
    rounded = apply_rounding(clamped, policy.rounding)
    return _fit_bounds(rounded, clamped, policy.min_price, policy.max_price, policy.rounding)
