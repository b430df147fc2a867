from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_acting_user_id, require_acting_user_id
from app.db.session import get_session
from app.schemas.coupons import (
    CouponDiagnostics,
    CouponQuote,
    CouponRead,
    CouponRedeemRequest,
    CouponRedemptionRead,
    CouponValidateRequest,
    RedemptionResult,
)
from app.services import coupons as coupons_service
from app.services import redemptions as redemptions_service

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.get("/active", response_model=list[CouponRead])
async def list_active_coupons(session: AsyncSession = Depends(get_session)) -> list[CouponRead]:
    coupons = await coupons_service.list_active_coupons(session)
    return [CouponRead.model_validate(coupon) for coupon in coupons]


@router.post("/validate", response_model=CouponQuote)
async def validate_coupon(
    payload: CouponValidateRequest,
    session: AsyncSession = Depends(get_session),
    acting_user_id: str | None = Depends(get_acting_user_id),
) -> CouponQuote:
    return await coupons_service.validate_coupon(
        session,
        code=payload.code,
        order_amount=payload.order_amount,
        user_id=acting_user_id or payload.user_id,
    )


@router.get("/diagnose", response_model=CouponDiagnostics)
async def diagnose_coupon(
    code: str = Query(min_length=1, max_length=40),
    order_amount: Decimal = Query(default=Decimal("0"), ge=0, max_digits=14, decimal_places=2),
    user_id: str | None = Query(default=None, max_length=64),
    session: AsyncSession = Depends(get_session),
) -> CouponDiagnostics:
    return await coupons_service.diagnose_coupon(session, code=code, order_amount=order_amount, user_id=user_id)


@router.post("/redeem", response_model=RedemptionResult)
async def redeem_coupon(
    payload: CouponRedeemRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(require_acting_user_id),
) -> RedemptionResult:
    return await redemptions_service.redeem_coupon(
        session,
        code=payload.code,
        order_id=payload.order_id,
        user_id=user_id,
        order_amount=payload.order_amount,
    )


@router.get("/history", response_model=list[CouponRedemptionRead])
async def coupon_history(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(require_acting_user_id),
) -> list[CouponRedemptionRead]:
    return await redemptions_service.list_user_redemptions(session, user_id=user_id)
