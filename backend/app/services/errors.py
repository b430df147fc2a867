"""Error taxonomy for the pricing engine.

Every failure a caller can act on is a distinct ``PricingError`` subclass with a
stable ``code`` so clients can render a precise message. ``meta`` carries
structured context (e.g. the shortfall for ``MinOrderNotMetError``).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class PricingError(Exception):
    code = "pricing_error"
    status_code = 400

    def __init__(self, detail: str, **meta: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.meta = meta

    def to_payload(self) -> dict[str, Any]:
        meta = {key: str(value) if isinstance(value, Decimal) else value for key, value in self.meta.items()}
        return {"detail": self.detail, "code": self.code, "meta": meta or None}


class ValidationError(PricingError):
    code = "validation_error"
    status_code = 422

    def __init__(self, field: str, detail: str) -> None:
        super().__init__(f"{field}: {detail}", field=field)
        self.field = field


class NotFoundError(PricingError):
    code = "not_found"
    status_code = 404


class ExpiredError(PricingError):
    code = "expired"
    status_code = 400


class UsageLimitExceededError(PricingError):
    code = "usage_limit_exceeded"
    status_code = 409


class MinOrderNotMetError(PricingError):
    code = "min_order_not_met"
    status_code = 400

    def __init__(self, *, min_order_amount: Decimal, order_amount: Decimal) -> None:
        shortfall = min_order_amount - order_amount
        super().__init__(
            f"Order must be at least {min_order_amount} to use this code",
            min_order_amount=min_order_amount,
            order_amount=order_amount,
            shortfall=shortfall,
        )
        self.shortfall = shortfall


class AlreadyRedeemedError(PricingError):
    code = "already_redeemed"
    status_code = 409


class InternalError(PricingError):
    code = "internal_error"
    status_code = 500
