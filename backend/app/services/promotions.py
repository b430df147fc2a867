"""Automatic promotion evaluation.

All active, code-less rules are evaluated independently and every rule that
yields a positive discount is stacked; there is no priority or exclusivity
between rule types. The stacked total is then clamped by ``pricing.aggregate``.

This path is fail-open: if the rule catalog cannot be read or any rule blows up
during evaluation, the cart is quoted with no discount instead of blocking
checkout.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, time
from decimal import Decimal
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.schemas.pricing import AppliedRule, CartLine, PricingResult
from app.schemas.promotions import (
    CategoryBundleRule,
    ComboRule,
    FlashSaleRule,
    OrderThresholdRule,
    PromotionRuleSpec,
)
from app.services import errors, pricing, rule_catalog
from app.services.combo import combo_satisfied

logger = logging.getLogger(__name__)


def parse_cart_lines(items: Sequence[CartLine | Mapping]) -> list[CartLine]:
    lines: list[CartLine] = []
    for idx, item in enumerate(items):
        if isinstance(item, CartLine):
            lines.append(item)
            continue
        try:
            lines.append(CartLine.model_validate(item))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "item"
            raise errors.ValidationError(f"items[{idx}].{field}", first.get("msg", "invalid value")) from exc
    return lines


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def local_now(now: datetime) -> datetime:
    return now.astimezone(ZoneInfo(settings.pricing_timezone))


def within_daily_window(rule: FlashSaleRule, now: datetime) -> bool:
    """Inclusive same-day window in shop-local time; a rule without times is always open."""
    if rule.daily_start_time is None or rule.daily_end_time is None:
        return True
    start = _minutes(rule.daily_start_time)
    end = _minutes(rule.daily_end_time)
    if start > end:
        # Overnight ranges (e.g. 22:00-02:00) are not supported and never match.
        logger.warning("flash_sale_overnight_window", extra={"rule_id": str(rule.id)})
        return False
    current = _minutes(local_now(now).time())
    return start <= current <= end


def rule_discount(rule: PromotionRuleSpec, lines: Sequence[CartLine], subtotal: Decimal, now: datetime) -> Decimal:
    discount = pricing.ZERO
    if isinstance(rule, OrderThresholdRule):
        if subtotal >= rule.min_order_value:
            discount = pricing.percent_of(subtotal, rule.discount_percent)
    elif isinstance(rule, FlashSaleRule):
        if within_daily_window(rule, now):
            discount = pricing.percent_of(subtotal, rule.discount_percent)
    elif isinstance(rule, CategoryBundleRule):
        if any(line.category_id == rule.applicable_category_id for line in lines):
            subset = pricing.category_subtotal(lines, rule.applicable_category_id)
            discount = pricing.percent_of(subset, rule.discount_percent)
    elif isinstance(rule, ComboRule):
        # Combo discounts are taken on the whole cart subtotal, not just the combo items.
        if combo_satisfied(lines, rule.requirements):
            discount = pricing.percent_of(subtotal, rule.discount_percent)
    return pricing.cap(discount, rule.max_discount_amount)


def apply_rules(
    rules: Sequence[PromotionRuleSpec],
    lines: Sequence[CartLine],
    *,
    now: datetime,
) -> PricingResult:
    subtotal = pricing.cart_subtotal(lines)
    applied: list[AppliedRule] = []
    for rule in rules:
        discount = rule_discount(rule, lines, subtotal, now)
        if discount > 0:
            applied.append(AppliedRule(id=rule.id, name=rule.name, type=rule.type, discount=discount))
    return pricing.aggregate(subtotal, applied)


async def evaluate_automatic_promotions(
    session: AsyncSession,
    items: Sequence[CartLine | Mapping],
    *,
    now: datetime | None = None,
) -> PricingResult:
    lines = parse_cart_lines(items)
    subtotal = pricing.cart_subtotal(lines)
    if not lines:
        return pricing.no_discount(subtotal)

    now = now or utcnow()
    try:
        rules = await rule_catalog.list_active_rules(session, now=now, automatic_only=True)
        result = apply_rules(rules, lines, now=now)
    except Exception:
        logger.exception("automatic_promotions_failed_open", extra={"lines": len(lines), "subtotal": subtotal})
        return pricing.no_discount(subtotal)

    logger.info(
        "automatic_promotions_evaluated",
        extra={
            "subtotal": result.subtotal,
            "discount_amount": result.discount_amount,
            "rules": [str(rule.id) for rule in result.applied_rules],
        },
    )
    return result
