from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.db.session import get_session
from app.schemas.pricing import PricingResult, PromotionApplyRequest
from app.schemas.promotions import (
    ComboRequirementRead,
    PromotionCodeQuote,
    PromotionCodeValidateRequest,
    PromotionRuleDetail,
    PromotionRulePage,
    PromotionRuleRead,
)
from app.services import catalog as catalog_service
from app.services import coupons as coupons_service
from app.services import promotions as promotions_service
from app.services import rule_catalog

router = APIRouter(prefix="/promotions", tags=["promotions"])


@router.post("/apply", response_model=PricingResult)
async def apply_promotions(
    payload: PromotionApplyRequest,
    reprice: bool = Query(default=False, description="Refresh unit prices and categories from the catalog"),
    session: AsyncSession = Depends(get_session),
) -> PricingResult:
    lines = payload.items
    if reprice:
        lines = await catalog_service.reprice_cart_lines(lines, catalog_service.SqlCatalogLookup(session))
    return await promotions_service.evaluate_automatic_promotions(session, lines)


@router.get("", response_model=PromotionRulePage)
async def list_promotions(
    active_only: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> PromotionRulePage:
    rows, total, pages = await rule_catalog.list_rules(session, active_only=active_only, page=page, limit=limit)
    return PromotionRulePage(
        items=[PromotionRuleRead.model_validate(row) for row in rows],
        page=page,
        limit=limit,
        total=total,
        pages=pages,
    )


@router.get("/active", response_model=list[PromotionRuleRead])
async def list_active_promotions(session: AsyncSession = Depends(get_session)) -> list[PromotionRuleRead]:
    rows = await rule_catalog.list_active_rule_rows(session)
    return [PromotionRuleRead.model_validate(row) for row in rows]


@router.post("/validate-code", response_model=PromotionCodeQuote)
async def validate_promotion_code(
    payload: PromotionCodeValidateRequest,
    session: AsyncSession = Depends(get_session),
) -> PromotionCodeQuote:
    return await coupons_service.validate_promotion_code(session, code=payload.code, order_amount=payload.order_amount)


@router.get("/{rule_id}", response_model=PromotionRuleDetail)
async def get_promotion(rule_id: UUID, session: AsyncSession = Depends(get_session)) -> PromotionRuleDetail:
    rule = await rule_catalog.get_rule(session, rule_id)
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Promotion not found")
    base = PromotionRuleRead.model_validate(rule)
    return PromotionRuleDetail(
        **base.model_dump(),
        requirements=[ComboRequirementRead.model_validate(req) for req in rule.requirements],
        is_currently_active=rule_catalog.is_currently_active(rule, utcnow()),
    )
