"""Coupon redemption ledger.

Redemption is the only write this engine performs. The per-user rule and the
usage cap are both enforced by the database inside one transaction:

* the redemption insert is keyed by unique constraints on
  ``(coupon_id, single_use_key)`` and ``order_id``;
* ``used_count`` is advanced by a conditional ``UPDATE`` that only matches while
  the coupon still has capacity.

If either write is refused the transaction is rolled back, so no redemption row
exists without its matching increment.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.coupon import Coupon, CouponRedemption
from app.schemas.coupons import CouponRedemptionRead, RedemptionResult
from app.services import coupons as coupon_service
from app.services import errors

logger = logging.getLogger(__name__)


async def _claim_usage_slot(session: AsyncSession, coupon_id) -> bool:
    result = await session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1


async def redeem_coupon(
    session: AsyncSession,
    *,
    code: str,
    order_id: str,
    user_id: str | None,
    order_amount: Decimal,
    now: datetime | None = None,
) -> RedemptionResult:
    user_id = (user_id or "").strip()
    order_id = (order_id or "").strip()
    if not user_id:
        raise errors.ValidationError("user_id", "is required to redeem a coupon")
    if not order_id:
        raise errors.ValidationError("order_id", "is required to redeem a coupon")
    order_amount = Decimal(order_amount)
    if order_amount < 0:
        raise errors.ValidationError("order_amount", "must be greater than or equal to 0")

    now = now or utcnow()
    coupon = await coupon_service.check_coupon(session, code=code, order_amount=order_amount, user_id=user_id, now=now)
    discount = coupon_service.compute_coupon_discount(coupon, order_amount)
    coupon_id = coupon.id
    coupon_code = coupon.code

    redemption = CouponRedemption(
        coupon_id=coupon_id,
        user_id=user_id,
        order_id=order_id,
        single_use_key=None if coupon.allow_repeat_use else user_id,
        discount_amount=discount,
    )
    session.add(redemption)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        logger.warning(
            "coupon_redeem_rejected",
            extra={"coupon_code": coupon_code, "order_id": order_id, "reason": "already_redeemed"},
        )
        raise errors.AlreadyRedeemedError(
            "Coupon already redeemed for this user or order", code=coupon_code, order_id=order_id
        ) from exc

    if not await _claim_usage_slot(session, coupon_id):
        await session.rollback()
        logger.warning(
            "coupon_redeem_rejected",
            extra={"coupon_code": coupon_code, "order_id": order_id, "reason": "usage_limit_exceeded"},
        )
        raise errors.UsageLimitExceededError("Coupon usage limit reached", code=coupon_code)

    redemption_id = redemption.id
    await session.commit()

    logger.info(
        "coupon_redeemed",
        extra={"coupon_code": coupon_code, "order_id": order_id, "user_id": user_id, "discount_amount": discount},
    )
    return RedemptionResult(
        redemption_id=redemption_id,
        coupon_id=coupon_id,
        code=coupon_code,
        order_id=order_id,
        discount_amount=discount,
        final_amount=order_amount - discount,
    )


async def list_user_redemptions(session: AsyncSession, *, user_id: str) -> list[CouponRedemptionRead]:
    rows = (
        (
            await session.execute(
                select(CouponRedemption)
                .where(CouponRedemption.user_id == user_id)
                .order_by(CouponRedemption.created_at.desc(), CouponRedemption.id)
            )
        )
        .scalars()
        .all()
    )
    return [
        CouponRedemptionRead(
            id=row.id,
            coupon_id=row.coupon_id,
            code=row.coupon.code,
            order_id=row.order_id,
            discount_amount=Decimal(row.discount_amount),
            created_at=row.created_at,
        )
        for row in rows
    ]
