"""promotion rules, coupons and redemption ledger

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "promotion_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=15), nullable=False),
        sa.Column("code", sa.String(length=40), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("min_order_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("daily_start_time", sa.String(length=5), nullable=True),
        sa.Column("daily_end_time", sa.String(length=5), nullable=True),
        sa.Column("applicable_category_id", sa.String(length=64), nullable=True),
        sa.Column("max_discount_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("start_date < end_date", name="ck_promotion_rules_window"),
        sa.CheckConstraint(
            "discount_percent IS NULL OR (discount_percent >= 0 AND discount_percent <= 100)",
            name="ck_promotion_rules_discount_percent",
        ),
    )
    op.create_index("ix_promotion_rules_code", "promotion_rules", ["code"], unique=True)
    op.create_index("ix_promotion_rules_start_date", "promotion_rules", ["start_date"])
    op.create_index("ix_promotion_rules_end_date", "promotion_rules", ["end_date"])

    op.create_table(
        "combo_requirements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "promotion_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("promotion_rules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("required_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("promotion_id", "product_id", name="uq_combo_requirements_promotion_product"),
        sa.CheckConstraint("required_quantity >= 1", name="ck_combo_requirements_quantity"),
    )
    op.create_index("ix_combo_requirements_promotion_id", "combo_requirements", ["promotion_id"])

    op.create_table(
        "coupons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("value", sa.Numeric(14, 2), nullable=False),
        sa.Column("min_order_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("max_discount_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("allow_repeat_use", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("applicable_categories", sa.JSON(), nullable=True),
        sa.Column("applicable_products", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("used_count >= 0", name="ck_coupons_used_count_positive"),
        sa.CheckConstraint("usage_limit IS NULL OR used_count <= usage_limit", name="ck_coupons_used_count_limit"),
        sa.CheckConstraint("valid_from < valid_until", name="ck_coupons_window"),
        sa.CheckConstraint("type <> 'percentage' OR value <= 100", name="ck_coupons_percentage_value"),
    )
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)

    op.create_table(
        "coupon_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("coupon_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("coupons.id"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("single_use_key", sa.String(length=64), nullable=True),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("coupon_id", "single_use_key", name="uq_coupon_redemptions_coupon_single_use"),
        sa.UniqueConstraint("order_id", name="uq_coupon_redemptions_order"),
    )
    op.create_index("ix_coupon_redemptions_coupon_id", "coupon_redemptions", ["coupon_id"])
    op.create_index("ix_coupon_redemptions_user_id", "coupon_redemptions", ["user_id"])

    op.create_table(
        "catalog_products",
        sa.Column("product_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("category_id", sa.String(length=64), nullable=True),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_catalog_products_category_id", "catalog_products", ["category_id"])


def downgrade() -> None:
    op.drop_index("ix_catalog_products_category_id", table_name="catalog_products")
    op.drop_table("catalog_products")
    op.drop_index("ix_coupon_redemptions_user_id", table_name="coupon_redemptions")
    op.drop_index("ix_coupon_redemptions_coupon_id", table_name="coupon_redemptions")
    op.drop_table("coupon_redemptions")
    op.drop_index("ix_coupons_code", table_name="coupons")
    op.drop_table("coupons")
    op.drop_index("ix_combo_requirements_promotion_id", table_name="combo_requirements")
    op.drop_table("combo_requirements")
    op.drop_index("ix_promotion_rules_end_date", table_name="promotion_rules")
    op.drop_index("ix_promotion_rules_start_date", table_name="promotion_rules")
    op.drop_index("ix_promotion_rules_code", table_name="promotion_rules")
    op.drop_table("promotion_rules")
