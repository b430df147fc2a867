from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utcnow
from app.models.coupon import Coupon, CouponRedemption, CouponType
from app.models.promotion import PromotionRuleType
from app.schemas.coupons import CouponDiagnostics, CouponQuote
from app.schemas.promotions import PromotionCodeQuote
from app.services import errors, pricing, rule_catalog


class CouponState(str, enum.Enum):
    inactive = "inactive"
    unstarted = "unstarted"
    active = "active"
    exhausted = "exhausted"
    expired = "expired"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def is_exhausted(coupon: Coupon) -> bool:
    return coupon.usage_limit is not None and int(coupon.used_count or 0) >= int(coupon.usage_limit)


def coupon_state(coupon: Coupon, now: datetime) -> CouponState:
    """Redemption lifecycle; expired and exhausted are independent terminal states."""
    if not coupon.is_active:
        return CouponState.inactive
    if now > as_utc(coupon.valid_until):
        return CouponState.expired
    if is_exhausted(coupon):
        return CouponState.exhausted
    if now < as_utc(coupon.valid_from):
        return CouponState.unstarted
    return CouponState.active


def compute_coupon_discount(coupon: Coupon, order_amount: Decimal) -> Decimal:
    if coupon.type == CouponType.percentage:
        discount = pricing.percent_of(order_amount, Decimal(coupon.value))
        discount = pricing.cap(discount, coupon.max_discount_amount)
    else:
        discount = Decimal(coupon.value)
    return max(pricing.ZERO, min(discount, order_amount))


async def get_coupon_by_code(session: AsyncSession, *, code: str) -> Coupon | None:
    cleaned = normalize_code(code)
    if not cleaned:
        return None
    res = await session.execute(select(Coupon).where(Coupon.code == cleaned))
    return res.scalar_one_or_none()


async def has_user_redeemed(session: AsyncSession, *, coupon_id, user_id: str) -> bool:
    count = (
        await session.execute(
            select(func.count())
            .select_from(CouponRedemption)
            .where(CouponRedemption.coupon_id == coupon_id, CouponRedemption.user_id == user_id)
        )
    ).scalar_one()
    return int(count or 0) > 0


async def check_coupon(
    session: AsyncSession,
    *,
    code: str,
    order_amount: Decimal,
    user_id: str | None,
    now: datetime,
) -> Coupon:
    """Run the ordered eligibility checks and return the coupon or raise the first failure."""
    coupon = await get_coupon_by_code(session, code=code)
    if coupon is None or not coupon.is_active:
        raise errors.NotFoundError("Coupon not found", code=normalize_code(code))
    if now < as_utc(coupon.valid_from) or now > as_utc(coupon.valid_until):
        raise errors.ExpiredError("Coupon is not valid at this time", code=coupon.code)
    if is_exhausted(coupon):
        raise errors.UsageLimitExceededError("Coupon usage limit reached", code=coupon.code)
    if coupon.min_order_amount is not None and order_amount < Decimal(coupon.min_order_amount):
        raise errors.MinOrderNotMetError(min_order_amount=Decimal(coupon.min_order_amount), order_amount=order_amount)
    if user_id and not coupon.allow_repeat_use:
        if await has_user_redeemed(session, coupon_id=coupon.id, user_id=user_id):
            raise errors.AlreadyRedeemedError("Coupon already used by this user", code=coupon.code)
    return coupon


async def validate_coupon(
    session: AsyncSession,
    *,
    code: str,
    order_amount: Decimal,
    user_id: str | None = None,
    now: datetime | None = None,
) -> CouponQuote:
    """Quote a coupon against an order amount without touching persisted state."""
    order_amount = Decimal(order_amount)
    if order_amount < 0:
        raise errors.ValidationError("order_amount", "must be greater than or equal to 0")
    coupon = await check_coupon(session, code=code, order_amount=order_amount, user_id=user_id, now=now or utcnow())
    discount = compute_coupon_discount(coupon, order_amount)
    return CouponQuote(
        coupon_id=coupon.id,
        code=coupon.code,
        type=coupon.type,
        discount_amount=discount,
        final_amount=order_amount - discount,
    )


async def diagnose_coupon(
    session: AsyncSession,
    *,
    code: str,
    order_amount: Decimal,
    user_id: str | None = None,
    now: datetime | None = None,
) -> CouponDiagnostics:
    now = now or utcnow()
    cleaned = normalize_code(code)
    coupon = await get_coupon_by_code(session, code=cleaned)
    if coupon is None:
        return CouponDiagnostics(code=cleaned, found=False, order_amount=order_amount, user_id=user_id, reasons=["not_found"])

    reasons: list[str] = []
    if not coupon.is_active:
        reasons.append("inactive")
    if now < as_utc(coupon.valid_from):
        reasons.append("not_started")
    if now > as_utc(coupon.valid_until):
        reasons.append("expired")
    if is_exhausted(coupon):
        reasons.append("usage_limit_reached")
    if coupon.min_order_amount is not None and order_amount < Decimal(coupon.min_order_amount):
        reasons.append("min_order_not_met")
    if user_id and not coupon.allow_repeat_use and await has_user_redeemed(session, coupon_id=coupon.id, user_id=user_id):
        reasons.append("already_redeemed")

    return CouponDiagnostics(
        code=coupon.code,
        found=True,
        state=coupon_state(coupon, now).value,
        order_amount=order_amount,
        user_id=user_id,
        reasons=reasons,
    )


async def list_active_coupons(session: AsyncSession, *, now: datetime | None = None) -> list[Coupon]:
    now = now or utcnow()
    res = await session.execute(
        select(Coupon)
        .where(
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .order_by(Coupon.valid_until, Coupon.code)
    )
    return list(res.scalars().all())


async def validate_promotion_code(
    session: AsyncSession,
    *,
    code: str,
    order_amount: Decimal,
    now: datetime | None = None,
) -> PromotionCodeQuote:
    """Quote a code-bearing promotion rule (manual code entry) against an order amount."""
    order_amount = Decimal(order_amount)
    if order_amount < 0:
        raise errors.ValidationError("order_amount", "must be greater than or equal to 0")
    rule = await rule_catalog.get_active_rule_by_code(session, code, now=now)
    if rule is None:
        raise errors.NotFoundError("Promotion code not found or not active", code=normalize_code(code))

    if rule.type == PromotionRuleType.order_threshold and rule.min_order_value is not None:
        if order_amount < Decimal(rule.min_order_value):
            raise errors.MinOrderNotMetError(min_order_amount=Decimal(rule.min_order_value), order_amount=order_amount)

    percent = Decimal(rule.discount_percent or 0)
    discount = pricing.cap(pricing.percent_of(order_amount, percent), rule.max_discount_amount)
    return PromotionCodeQuote(
        code=rule.code or normalize_code(code),
        promotion_id=rule.id,
        promotion_name=rule.name,
        type=rule.type,
        discount_percent=percent,
        original_amount=order_amount,
        discount_amount=discount,
        final_amount=max(pricing.ZERO, order_amount - discount),
    )
