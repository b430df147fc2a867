from app.db.base import Base  # noqa: F401
from app.models.catalog import CatalogProduct  # noqa: F401
from app.models.coupon import Coupon, CouponRedemption, CouponType  # noqa: F401
from app.models.promotion import ComboRequirement, PromotionRule, PromotionRuleType  # noqa: F401

__all__ = [
    "Base",
    "CatalogProduct",
    "Coupon",
    "CouponRedemption",
    "CouponType",
    "ComboRequirement",
    "PromotionRule",
    "PromotionRuleType",
]
