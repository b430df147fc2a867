import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class PromotionRuleType(str, enum.Enum):
    order_threshold = "order_threshold"
    combo = "combo"
    flash_sale = "flash_sale"
    category_bundle = "category_bundle"


class PromotionRule(Base):
    __tablename__ = "promotion_rules"
    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_promotion_rules_window"),
        CheckConstraint(
            "discount_percent IS NULL OR (discount_percent >= 0 AND discount_percent <= 100)",
            name="ck_promotion_rules_discount_percent",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[PromotionRuleType] = mapped_column(Enum(PromotionRuleType, native_enum=False), nullable=False)
    code: Mapped[str | None] = mapped_column(String(40), unique=True, nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    min_order_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    daily_start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    daily_end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    applicable_category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    max_discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    requirements: Mapped[list["ComboRequirement"]] = relationship(
        "ComboRequirement", back_populates="promotion", cascade="all, delete-orphan", lazy="selectin"
    )


class ComboRequirement(Base):
    __tablename__ = "combo_requirements"
    __table_args__ = (
        UniqueConstraint("promotion_id", "product_id", name="uq_combo_requirements_promotion_product"),
        CheckConstraint("required_quantity >= 1", name="ck_combo_requirements_quantity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    promotion_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("promotion_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    required_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    promotion: Mapped[PromotionRule] = relationship("PromotionRule", back_populates="requirements")
