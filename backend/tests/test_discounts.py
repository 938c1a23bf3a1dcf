from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from constructmart.models.product import inventory_status
from constructmart.services.discounts import (
    DiscountRule,
    applies_to_product,
    apply_rate,
    calculate_discount,
    calculate_order_discount,
    customer_matches,
    derive_status,
    is_promotion_applicable,
    percent_of,
    within_time_window,
)

# a Monday
NOW = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)


def rule(promotion_type="percentage", value=10, **kw):
    return DiscountRule(promotion_type=promotion_type, discount_type=kw.pop("discount_type", "percentage"),
                        discount_value=value, **kw)


def test_percent_and_rate_round_half_up():
    assert percent_of(1999, 10) == 200
    assert percent_of(125, 10) == 13
    assert apply_rate(1805, 0.1) == 181
    assert apply_rate(0, 0.1) == 0


def test_percentage_discount_with_cap():
    assert calculate_discount(rule(value=15), 10000).discount_cents == 1500
    assert calculate_discount(rule(value=15, maximum_discount_cents=1000), 10000).discount_cents == 1000


def test_fixed_amount_never_exceeds_line():
    fixed = rule("fixed_amount", 2500)
    assert calculate_discount(fixed, 10000).discount_cents == 2500
    assert calculate_discount(fixed, 1000).discount_cents == 1000


def test_minimum_purchase_uses_order_subtotal():
    r = rule(value=10, minimum_purchase_cents=5000)
    assert calculate_discount(r, 1000, 2).discount_cents == 0
    assert calculate_discount(r, 1000, 2, order_subtotal_cents=6000).discount_cents == 200


def test_free_shipping_only_touches_shipping():
    result = calculate_discount(rule("free_shipping", 0), 1000, shipping_cents=1500)
    assert result.discount_cents == 0
    assert result.shipping_discount_cents == 1500
    assert result.total_cents == 1500


@pytest.mark.parametrize("quantity,expected", [(1, 0), (2, 0), (3, 1000), (5, 1000), (6, 2000)])
def test_buy_two_get_one(quantity, expected):
    r = rule("buy_x_get_y", 100, buy_quantity=2, get_quantity=1)
    assert calculate_discount(r, 1000, quantity).discount_cents == expected


def test_buy_x_get_y_half_off_and_fixed():
    half = rule("buy_x_get_y", 50, buy_quantity=1, get_quantity=1)
    assert calculate_discount(half, 1000, 4).discount_cents == 1000
    fixed = rule("buy_x_get_y", 300, discount_type="fixed_amount", buy_quantity=1, get_quantity=1)
    assert calculate_discount(fixed, 1000, 2).discount_cents == 300


def test_bundle_follows_discount_type():
    assert calculate_discount(rule("bundle", 20), 5000).discount_cents == 1000
    assert calculate_discount(rule("bundle", 700, discount_type="fixed_amount"), 5000).discount_cents == 700


def test_order_discount_is_allocated_across_lines():
    result, per_line = calculate_order_discount(rule("fixed_amount", 1000), [(3000, 1), (1000, 1)], 4000)
    assert result.discount_cents == 1000
    assert per_line == [750, 250]
    assert sum(per_line) == result.discount_cents


def test_order_discount_respects_minimum():
    result, per_line = calculate_order_discount(
        rule(value=10, minimum_purchase_cents=10000), [(1000, 2)], 2000
    )
    assert result.total_cents == 0
    assert per_line == [0]


def test_derive_status():
    start, end = NOW - timedelta(days=1), NOW + timedelta(days=1)
    assert derive_status(False, start, end, NOW) == "draft"
    assert derive_status(True, start, end, NOW) == "active"
    assert derive_status(True, NOW + timedelta(hours=1), end, NOW) == "scheduled"
    assert derive_status(True, start, NOW - timedelta(hours=1), NOW) == "expired"
    assert derive_status(True, start, end, NOW, usage_count=5, total_uses=5) == "expired"
    # naive datetimes are treated as UTC
    assert derive_status(True, start.replace(tzinfo=None), end.replace(tzinfo=None), NOW) == "active"


def test_time_window():
    assert within_time_window(None, NOW)
    assert within_time_window({"daysOfWeek": [1], "startTime": "09:00", "endTime": "17:00"}, NOW)
    assert not within_time_window({"daysOfWeek": [0, 6]}, NOW)
    assert not within_time_window({"startTime": "13:00"}, NOW)
    assert not within_time_window({"endTime": "12:00"}, NOW)


def test_customer_groups():
    assert customer_matches(None, 0)
    assert customer_matches({"customerGroups": ["new"]}, 0)
    assert not customer_matches({"customerGroups": ["new"]}, 2)
    assert customer_matches({"customerGroups": ["returning"]}, 1)
    assert not customer_matches({"customerGroups": ["vip"]}, 4)
    assert customer_matches({"customerGroups": ["vip"]}, 5)
    assert not customer_matches({"customerGroups": ["all"], "firstTimeCustomersOnly": True}, 1)


def test_product_eligibility():
    assert applies_to_product(None, "prod-1", [])
    scoped = {"allProducts": False, "productUids": ["prod-1"], "categoryUids": ["cat-9"]}
    assert applies_to_product(scoped, "prod-1", [])
    assert applies_to_product(scoped, "prod-2", ["cat-1", "cat-9"])
    assert not applies_to_product(scoped, "prod-2", ["cat-1", None])


def _promotion(**kw):
    values = dict(
        is_active=True,
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=1),
        usage_count=0,
        usage_limits={},
        time_restrictions=None,
        eligibility={"customerGroups": ["all"]},
    )
    values.update(kw)
    return SimpleNamespace(**values)


def test_promotion_applicability_reasons():
    assert is_promotion_applicable(_promotion(), NOW) is None
    assert is_promotion_applicable(_promotion(is_active=False), NOW) == "Promotion is draft"
    assert (
        is_promotion_applicable(_promotion(time_restrictions={"daysOfWeek": [0]}), NOW)
        == "Promotion is not available at this time"
    )
    assert (
        is_promotion_applicable(_promotion(eligibility={"firstTimeCustomersOnly": True}), NOW, customer_order_count=3)
        == "You are not eligible for this promotion"
    )
    assert (
        is_promotion_applicable(_promotion(usage_limits={"usesPerCustomer": 1}), NOW, customer_uses=1)
        == "You have already used this promotion"
    )
    assert (
        is_promotion_applicable(_promotion(usage_count=10, usage_limits={"totalUses": 10}), NOW)
        == "Promotion is expired"
    )


def test_inventory_status():
    assert inventory_status(50, 5) == "in_stock"
    assert inventory_status(5, 5) == "low_stock"
    assert inventory_status(0, 5) == "out_of_stock"
    assert inventory_status(-2, 5, backorder_allowed=True) == "backorder"
