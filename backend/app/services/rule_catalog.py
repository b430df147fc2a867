from __future__ import annotations

import logging
import math
from datetime import datetime
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.clock import as_utc, utcnow
from app.models.promotion import PromotionRule, PromotionRuleType
from app.schemas.promotions import ComboRequirementSpec, PromotionRuleSpec, rule_adapter
from app.services import errors

logger = logging.getLogger(__name__)


def _normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _active_clause(now: datetime):
    return (
        PromotionRule.is_active.is_(True),
        PromotionRule.start_date <= now,
        PromotionRule.end_date >= now,
    )


def _automatic_clause():
    return or_(PromotionRule.code.is_(None), PromotionRule.code == "")


def is_currently_active(rule: PromotionRule, now: datetime) -> bool:
    return bool(rule.is_active) and as_utc(rule.start_date) <= now <= as_utc(rule.end_date)


def to_rule_spec(rule: PromotionRule) -> PromotionRuleSpec | None:
    """Narrow a stored row into its typed variant; rows missing required fields yield None."""
    data = {
        "id": rule.id,
        "name": rule.name,
        "type": rule.type,
        "discount_percent": rule.discount_percent,
        "max_discount_amount": rule.max_discount_amount,
    }
    if rule.type == PromotionRuleType.order_threshold:
        data["min_order_value"] = rule.min_order_value
    elif rule.type == PromotionRuleType.flash_sale:
        data["daily_start_time"] = rule.daily_start_time
        data["daily_end_time"] = rule.daily_end_time
    elif rule.type == PromotionRuleType.category_bundle:
        data["applicable_category_id"] = rule.applicable_category_id
    elif rule.type == PromotionRuleType.combo:
        data["requirements"] = tuple(ComboRequirementSpec.model_validate(req) for req in rule.requirements)
    try:
        return rule_adapter.validate_python(data)
    except PydanticValidationError as exc:
        logger.warning(
            "promotion_rule_skipped",
            extra={"rule_id": str(rule.id), "rule_type": str(rule.type.value), "error": str(exc.errors()[:3])},
        )
        return None


async def list_active_rules(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    automatic_only: bool = True,
) -> list[PromotionRuleSpec]:
    """Load the rules live at ``now``; store failures surface as InternalError."""
    try:
        rows = await list_active_rule_rows(session, now=now, automatic_only=automatic_only)
    except SQLAlchemyError as exc:
        raise errors.InternalError("Promotion rules are unavailable") from exc

    specs: list[PromotionRuleSpec] = []
    for row in rows:
        spec = to_rule_spec(row)
        if spec is not None:
            specs.append(spec)
    return specs


async def list_active_rule_rows(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    automatic_only: bool = False,
) -> list[PromotionRule]:
    now = now or utcnow()
    stmt = select(PromotionRule).options(selectinload(PromotionRule.requirements)).where(*_active_clause(now))
    if automatic_only:
        stmt = stmt.where(_automatic_clause())
    stmt = stmt.order_by(PromotionRule.start_date, PromotionRule.id)
    return list((await session.execute(stmt)).scalars().all())


async def get_rule(session: AsyncSession, rule_id: UUID) -> PromotionRule | None:
    res = await session.execute(
        select(PromotionRule).options(selectinload(PromotionRule.requirements)).where(PromotionRule.id == rule_id)
    )
    return res.scalar_one_or_none()


async def get_active_rule_by_code(session: AsyncSession, code: str, *, now: datetime | None = None) -> PromotionRule | None:
    cleaned = _normalize_code(code)
    if not cleaned:
        return None
    now = now or utcnow()
    res = await session.execute(
        select(PromotionRule)
        .options(selectinload(PromotionRule.requirements))
        .where(func.upper(PromotionRule.code) == cleaned, *_active_clause(now))
    )
    return res.scalars().first()


async def list_rules(
    session: AsyncSession,
    *,
    active_only: bool = False,
    page: int = 1,
    limit: int = 20,
    now: datetime | None = None,
) -> tuple[list[PromotionRule], int, int]:
    page = max(1, int(page))
    limit = min(100, max(1, int(limit)))
    now = now or utcnow()

    stmt = select(PromotionRule)
    count_stmt = select(func.count()).select_from(PromotionRule)
    if active_only:
        stmt = stmt.where(*_active_clause(now))
        count_stmt = count_stmt.where(*_active_clause(now))

    total = int((await session.execute(count_stmt)).scalar_one())
    rows = (
        (
            await session.execute(
                stmt.order_by(PromotionRule.updated_at.desc(), PromotionRule.id).offset((page - 1) * limit).limit(limit)
            )
        )
        .scalars()
        .all()
    )
    pages = math.ceil(total / limit) if total else 0
    return list(rows), total, pages
