from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.coupon import CouponType


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    order_amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    user_id: str | None = Field(default=None, max_length=64)


class CouponQuote(BaseModel):
    coupon_id: UUID
    code: str
    type: CouponType
    discount_amount: Decimal
    final_amount: Decimal


class CouponRedeemRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    order_id: str = Field(min_length=1, max_length=64)
    order_amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)


class RedemptionResult(BaseModel):
    redemption_id: UUID
    coupon_id: UUID
    code: str
    order_id: str
    discount_amount: Decimal
    final_amount: Decimal


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    type: CouponType
    value: Decimal
    min_order_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    used_count: int
    valid_from: datetime
    valid_until: datetime
    applicable_categories: list[str] | None = None
    applicable_products: list[str] | None = None


class CouponDiagnostics(BaseModel):
    code: str
    found: bool
    state: str | None = None
    order_amount: Decimal
    user_id: str | None = None
    reasons: list[str] = Field(default_factory=list)


class CouponRedemptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    code: str
    order_id: str
    discount_amount: Decimal
    created_at: datetime
