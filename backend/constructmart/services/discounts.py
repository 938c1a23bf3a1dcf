"""
Promotion arithmetic.

Everything here is pure: no sessions, no clocks other than the ``now`` passed
in. Money is integer cents; ``discount_value`` is a percent for percentage
discounts and cents for fixed amounts.
"""
from dataclasses import dataclass
from datetime import datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from constructmart.utils.identifiers import as_utc

VIP_ORDER_THRESHOLD = 5


@dataclass
class DiscountRule:
    promotion_type: str
    discount_type: str
    discount_value: float
    minimum_purchase_cents: Optional[int] = None
    maximum_discount_cents: Optional[int] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None

    @classmethod
    def from_promotion(cls, promotion) -> "DiscountRule":
        return cls(
            promotion_type=promotion.promotion_type,
            discount_type=promotion.discount_type,
            discount_value=promotion.discount_value or 0,
            minimum_purchase_cents=promotion.minimum_purchase_cents,
            maximum_discount_cents=promotion.maximum_discount_cents,
            buy_quantity=promotion.buy_quantity,
            get_quantity=promotion.get_quantity,
        )


@dataclass
class DiscountResult:
    discount_cents: int = 0
    shipping_discount_cents: int = 0

    @property
    def total_cents(self) -> int:
        return self.discount_cents + self.shipping_discount_cents


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, percent: float) -> int:
    return _round(Decimal(amount_cents) * Decimal(str(percent)) / Decimal(100))


def apply_rate(amount_cents: int, rate: float) -> int:
    """``amount × rate`` rounded half-up to whole cents (e.g. tax at 0.10)."""
    return _round(Decimal(amount_cents) * Decimal(str(rate)))


def _clamp(amount: int, upper: int) -> int:
    return max(0, min(amount, upper))


def _is_fixed(rule: DiscountRule) -> bool:
    if rule.promotion_type in ("percentage", "fixed_amount"):
        return rule.promotion_type == "fixed_amount"
    # bundle
    return rule.discount_type == "fixed_amount"


def _buy_x_get_y(rule: DiscountRule, unit_price_cents: int, quantity: int) -> int:
    buy = max(rule.buy_quantity or 1, 1)
    get = max(rule.get_quantity or 1, 1)
    free_units = (quantity // (buy + get)) * get
    if not free_units:
        return 0
    if rule.discount_type == "fixed_amount":
        per_unit = min(int(rule.discount_value), unit_price_cents)
        return free_units * per_unit
    return percent_of(free_units * unit_price_cents, rule.discount_value)


def calculate_discount(
    rule: DiscountRule,
    unit_price_cents: int,
    quantity: int = 1,
    order_subtotal_cents: Optional[int] = None,
    shipping_cents: int = 0,
) -> DiscountResult:
    """Discount for one line of ``quantity`` units.

    ``order_subtotal_cents`` is what the minimum purchase is checked against;
    it defaults to the line total. The item discount is never negative and
    never larger than the line, so the discounted price stays within
    ``[0, original]``.
    """
    line_total = max(unit_price_cents, 0) * max(quantity, 0)
    subtotal = line_total if order_subtotal_cents is None else order_subtotal_cents

    if rule.minimum_purchase_cents and subtotal < rule.minimum_purchase_cents:
        return DiscountResult()

    if rule.promotion_type == "free_shipping":
        return DiscountResult(shipping_discount_cents=max(shipping_cents, 0))

    if rule.promotion_type == "buy_x_get_y":
        amount = _buy_x_get_y(rule, unit_price_cents, quantity)
    elif _is_fixed(rule):
        amount = int(round(rule.discount_value))
    else:
        amount = percent_of(line_total, rule.discount_value)

    if rule.maximum_discount_cents:
        amount = min(amount, rule.maximum_discount_cents)
    return DiscountResult(discount_cents=_clamp(amount, line_total))


def calculate_order_discount(
    rule: DiscountRule,
    lines: Sequence[Tuple[int, int]],
    order_subtotal_cents: int,
    shipping_cents: int = 0,
) -> Tuple[DiscountResult, List[int]]:
    """Discount across the eligible ``(unit_price_cents, quantity)`` lines of an order.

    Returns the overall result plus the item discount allocated to each line.
    Buy-x-get-y is evaluated per line; other types act on the eligible total
    once and are spread over the lines in proportion to their value.
    """
    line_totals = [price * qty for price, qty in lines]
    eligible_total = sum(line_totals)

    if rule.minimum_purchase_cents and order_subtotal_cents < rule.minimum_purchase_cents:
        return DiscountResult(), [0] * len(lines)

    if rule.promotion_type == "free_shipping":
        return DiscountResult(shipping_discount_cents=max(shipping_cents, 0)), [0] * len(lines)

    if rule.promotion_type == "buy_x_get_y":
        per_line = [_buy_x_get_y(rule, price, qty) for price, qty in lines]
        total = sum(per_line)
        if rule.maximum_discount_cents and total > rule.maximum_discount_cents:
            per_line = _allocate(rule.maximum_discount_cents, per_line)
            total = rule.maximum_discount_cents
        return DiscountResult(discount_cents=total), per_line

    result = calculate_discount(rule, eligible_total, 1, order_subtotal_cents, shipping_cents)
    return result, _allocate(result.discount_cents, line_totals)


def _allocate(amount: int, weights: Sequence[int]) -> List[int]:
    """Split ``amount`` over ``weights`` proportionally; the last line absorbs rounding."""
    total = sum(weights)
    if not weights:
        return []
    if total <= 0 or amount <= 0:
        return [0] * len(weights)
    shares = [amount * w // total for w in weights]
    shares[-1] += amount - sum(shares)
    return shares


def derive_status(
    is_active: bool,
    start_date: datetime,
    end_date: datetime,
    now: datetime,
    usage_count: int = 0,
    total_uses: Optional[int] = None,
) -> str:
    if not is_active:
        return "draft"
    now = as_utc(now)
    if now < as_utc(start_date):
        return "scheduled"
    if now > as_utc(end_date):
        return "expired"
    if total_uses and usage_count >= total_uses:
        return "expired"
    return "active"


def _parse_hhmm(value: Optional[str]) -> Optional[time]:
    if not value:
        return None
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def within_time_window(restrictions: Optional[dict], now: datetime) -> bool:
    if not restrictions:
        return True
    days = restrictions.get("daysOfWeek")
    # 0 is Sunday
    if days and ((now.weekday() + 1) % 7) not in days:
        return False
    start = _parse_hhmm(restrictions.get("startTime"))
    end = _parse_hhmm(restrictions.get("endTime"))
    current = now.time().replace(second=0, microsecond=0, tzinfo=None)
    if start and current < start:
        return False
    if end and current > end:
        return False
    return True


def customer_matches(eligibility: Optional[dict], customer_order_count: int) -> bool:
    eligibility = eligibility or {}
    if eligibility.get("firstTimeCustomersOnly") and customer_order_count > 0:
        return False
    groups = eligibility.get("customerGroups") or ["all"]
    for group in groups:
        if group == "all":
            return True
        if group == "new" and customer_order_count == 0:
            return True
        if group == "returning" and customer_order_count > 0:
            return True
        if group == "vip" and customer_order_count >= VIP_ORDER_THRESHOLD:
            return True
    return False


def is_promotion_applicable(
    promotion,
    now: datetime,
    customer_order_count: int = 0,
    customer_uses: int = 0,
) -> Optional[str]:
    """Return ``None`` when ``promotion`` can be used right now, otherwise the reason it can't."""
    limits = promotion.usage_limits or {}
    status = derive_status(
        promotion.is_active,
        promotion.start_date,
        promotion.end_date,
        now,
        promotion.usage_count or 0,
        limits.get("totalUses"),
    )
    if status != "active":
        return f"Promotion is {status}"
    if not within_time_window(promotion.time_restrictions, as_utc(now)):
        return "Promotion is not available at this time"
    if not customer_matches(promotion.eligibility, customer_order_count):
        return "You are not eligible for this promotion"
    per_customer = limits.get("usesPerCustomer")
    if per_customer and customer_uses >= per_customer:
        return "You have already used this promotion"
    return None


def applies_to_product(eligibility: Optional[dict], product_uid: str, category_uids: Iterable[str]) -> bool:
    eligibility = eligibility or {}
    if eligibility.get("allProducts", True):
        return True
    if product_uid in (eligibility.get("productUids") or []):
        return True
    wanted = set(eligibility.get("categoryUids") or [])
    return any(uid in wanted for uid in category_uids if uid)


def _dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def build_impact_preview(rule: DiscountRule, sample_price_cents: int = 10000, shipping_cents: int = 1500) -> dict:
    base = calculate_discount(rule, sample_price_cents, 1, shipping_cents=shipping_cents)
    discounted = sample_price_cents - base.discount_cents
    percentage = round(base.discount_cents * 100 / sample_price_cents, 2) if sample_price_cents else 0.0

    examples = []
    if rule.promotion_type == "buy_x_get_y":
        bundle = max(rule.buy_quantity or 1, 1) + max(rule.get_quantity or 1, 1)
        for qty in (bundle - 1, bundle, bundle * 2):
            res = calculate_discount(rule, sample_price_cents, qty)
            original = sample_price_cents * qty
            examples.append({
                "scenario": f"Buy {qty} at {_dollars(sample_price_cents)} each",
                "originalPrice": original,
                "discountedPrice": original - res.discount_cents,
                "savings": res.discount_cents,
            })
    elif rule.promotion_type == "free_shipping":
        for amount in (sample_price_cents // 2, sample_price_cents, sample_price_cents * 3):
            res = calculate_discount(rule, amount, 1, shipping_cents=shipping_cents)
            examples.append({
                "scenario": f"Order of {_dollars(amount)} with {_dollars(shipping_cents)} shipping",
                "originalPrice": amount + shipping_cents,
                "discountedPrice": amount + shipping_cents - res.shipping_discount_cents,
                "savings": res.shipping_discount_cents,
            })
    else:
        amounts = [sample_price_cents // 2, sample_price_cents, sample_price_cents * 5 // 2]
        if rule.minimum_purchase_cents and rule.minimum_purchase_cents > 1:
            amounts.insert(0, rule.minimum_purchase_cents - 1)
        for amount in amounts:
            res = calculate_discount(rule, amount, 1)
            examples.append({
                "scenario": f"Order of {_dollars(amount)}",
                "originalPrice": amount,
                "discountedPrice": amount - res.discount_cents,
                "savings": res.discount_cents,
            })

    return {
        "originalPrice": sample_price_cents,
        "discountedPrice": discounted,
        "discountAmount": base.discount_cents,
        "shippingDiscount": base.shipping_discount_cents,
        "discountPercentage": percentage,
        "examples": examples,
    }
