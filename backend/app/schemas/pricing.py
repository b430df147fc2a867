from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from app.models.promotion import PromotionRuleType


class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: str = Field(min_length=1, max_length=64)
    quantity: StrictInt = Field(ge=1)
    unit_price: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    category_id: str | None = Field(default=None, max_length=64)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class AppliedRule(BaseModel):
    id: UUID
    name: str
    type: PromotionRuleType
    discount: Decimal


class PricingResult(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    final_total: Decimal
    applied_rules: list[AppliedRule] = Field(default_factory=list)


class PromotionApplyRequest(BaseModel):
    items: list[CartLine] = Field(min_length=1)
