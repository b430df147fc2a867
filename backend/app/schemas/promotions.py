from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from app.models.promotion import PromotionRuleType


def parse_clock_time(value: object) -> object:
    """Accept "H:MM" / "HH:MM" shop-local clock strings."""
    if value is None or isinstance(value, time):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    hours, _, minutes = raw.partition(":")
    try:
        return time(hour=int(hours), minute=int(minutes or 0))
    except ValueError as exc:
        raise ValueError(f"invalid clock time {raw!r}") from exc


class ComboRequirementSpec(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    product_id: str = Field(min_length=1)
    required_quantity: int = Field(ge=1)


class _RuleBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    discount_percent: Decimal = Field(ge=0, le=100)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)


class OrderThresholdRule(_RuleBase):
    type: Literal[PromotionRuleType.order_threshold] = PromotionRuleType.order_threshold
    min_order_value: Decimal = Field(ge=0)


class FlashSaleRule(_RuleBase):
    type: Literal[PromotionRuleType.flash_sale] = PromotionRuleType.flash_sale
    daily_start_time: time | None = None
    daily_end_time: time | None = None

    @field_validator("daily_start_time", "daily_end_time", mode="before")
    @classmethod
    def clock_time(cls, value: object) -> object:
        return parse_clock_time(value)


class CategoryBundleRule(_RuleBase):
    type: Literal[PromotionRuleType.category_bundle] = PromotionRuleType.category_bundle
    applicable_category_id: str = Field(min_length=1)


class ComboRule(_RuleBase):
    type: Literal[PromotionRuleType.combo] = PromotionRuleType.combo
    requirements: tuple[ComboRequirementSpec, ...] = ()


PromotionRuleSpec = Annotated[
    Union[OrderThresholdRule, FlashSaleRule, CategoryBundleRule, ComboRule],
    Field(discriminator="type"),
]

rule_adapter: TypeAdapter[PromotionRuleSpec] = TypeAdapter(PromotionRuleSpec)


class ComboRequirementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    required_quantity: int


class PromotionRuleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    type: PromotionRuleType
    code: str | None = None
    is_active: bool
    start_date: datetime
    end_date: datetime
    min_order_value: Decimal | None = None
    discount_percent: Decimal | None = None
    daily_start_time: str | None = None
    daily_end_time: str | None = None
    applicable_category_id: str | None = None
    max_discount_amount: Decimal | None = None


class PromotionRuleDetail(PromotionRuleRead):
    requirements: list[ComboRequirementRead] = Field(default_factory=list)
    is_currently_active: bool = False


class PromotionRulePage(BaseModel):
    items: list[PromotionRuleRead]
    page: int
    limit: int
    total: int
    pages: int


class PromotionCodeValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    order_amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)


class PromotionCodeQuote(BaseModel):
    code: str
    promotion_id: UUID
    promotion_name: str
    type: PromotionRuleType
    discount_percent: Decimal
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
