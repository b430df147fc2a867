from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP, Decimal
from typing import Literal

from app.core.config import settings
from app.schemas.pricing import AppliedRule, CartLine, PricingResult

MoneyRounding = Literal["half_up", "half_even", "up", "down", "floor"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
    "floor": ROUND_FLOOR,
}

ZERO = Decimal("0")


def money_quant() -> Decimal:
    return Decimal(settings.pricing_money_quant)


def quantize_money(value: Decimal, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return Decimal(value).quantize(money_quant(), rounding=mode)


def floor_money(value: Decimal) -> Decimal:
    return quantize_money(value, rounding="floor")


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """floor(amount * percent / 100) in money units."""
    if amount <= 0 or percent <= 0:
        return ZERO
    return floor_money(Decimal(amount) * Decimal(percent) / Decimal("100"))


def cap(amount: Decimal, limit: Decimal | None) -> Decimal:
    if limit is None:
        return amount
    return min(amount, Decimal(limit))


def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    return sum((line.line_total for line in lines), start=ZERO)


def category_subtotal(lines: Iterable[CartLine], category_id: str) -> Decimal:
    return sum((line.line_total for line in lines if line.category_id == category_id), start=ZERO)


def aggregate(subtotal: Decimal, applied: Sequence[AppliedRule]) -> PricingResult:
    """Stack per-rule discounts and clamp the total into [0, subtotal]."""
    total_discount = sum((rule.discount for rule in applied), start=ZERO)
    total_discount = max(ZERO, min(total_discount, subtotal))
    final_total = max(ZERO, subtotal - total_discount)
    return PricingResult(
        subtotal=subtotal,
        discount_amount=total_discount,
        final_total=final_total,
        applied_rules=list(applied),
    )


def no_discount(subtotal: Decimal) -> PricingResult:
    return aggregate(subtotal, [])
