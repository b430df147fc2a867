import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.config import settings
from app.models.promotion import PromotionRuleType
from app.schemas.promotions import FlashSaleRule
from app.services import errors, rule_catalog
from app.services import promotions as promotions_service
from app.services.promotions import evaluate_automatic_promotions, within_daily_window

from conftest import NOW


def _evaluate(factory, items, *, now: datetime = NOW):
    async def _run():
        async with factory() as session:
            return await evaluate_automatic_promotions(session, items, now=now)

    return asyncio.run(_run())


def _item(product_id: str, quantity: int, unit_price: str, category_id: str | None = None) -> dict:
    return {"product_id": product_id, "quantity": quantity, "unit_price": unit_price, "category_id": category_id}


def test_order_threshold_discount_on_qualifying_cart(session_factory, seed, make_rule) -> None:
    seed(session_factory, make_rule(PromotionRuleType.order_threshold, min_order_value="300000", discount_percent="10"))

    result = _evaluate(session_factory, [_item("p1", 2, "150000"), _item("p2", 1, "200000")])

    assert result.subtotal == Decimal("500000")
    assert result.discount_amount == Decimal("50000")
    assert result.final_total == Decimal("450000")
    assert [rule.type for rule in result.applied_rules] == [PromotionRuleType.order_threshold]


def test_order_threshold_below_minimum_gives_nothing(session_factory, seed, make_rule) -> None:
    seed(session_factory, make_rule(PromotionRuleType.order_threshold, min_order_value="300000"))

    result = _evaluate(session_factory, [_item("p1", 1, "299999")])

    assert result.discount_amount == Decimal("0")
    assert result.final_total == Decimal("299999")
    assert result.applied_rules == []


def test_category_bundle_discounts_only_matching_lines(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.category_bundle, applicable_category_id="A", discount_percent="15"),
    )

    result = _evaluate(
        session_factory,
        [_item("p1", 2, "50000", "A"), _item("p2", 1, "100000", "B")],
    )

    assert result.subtotal == Decimal("200000")
    assert result.discount_amount == Decimal("15000")
    assert result.final_total == Decimal("185000")


def test_category_bundle_without_matching_lines(session_factory, seed, make_rule) -> None:
    seed(session_factory, make_rule(PromotionRuleType.category_bundle, applicable_category_id="Z"))

    result = _evaluate(session_factory, [_item("p1", 1, "100000", "A")])

    assert result.discount_amount == Decimal("0")


def test_combo_one_unit_short_gives_nothing(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.combo, requirements={"shampoo": 2, "conditioner": 1}, discount_percent="20"),
    )

    short = _evaluate(session_factory, [_item("shampoo", 1, "100000"), _item("conditioner", 1, "80000")])
    assert short.discount_amount == Decimal("0")

    full = _evaluate(
        session_factory,
        [_item("shampoo", 1, "100000"), _item("conditioner", 1, "80000"), _item("shampoo", 1, "100000")],
    )
    assert full.subtotal == Decimal("280000")
    assert full.discount_amount == Decimal("56000")


def test_flash_sale_inside_local_window(session_factory, seed, make_rule) -> None:
    # NOW is 12:00 in the default shop timezone.
    seed(
        session_factory,
        make_rule(PromotionRuleType.flash_sale, daily_start_time="11:00", daily_end_time="13:00", discount_percent="5"),
    )

    result = _evaluate(session_factory, [_item("p1", 1, "100000")])

    assert result.discount_amount == Decimal("5000")


def test_flash_sale_outside_local_window(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.flash_sale, daily_start_time="05:00", daily_end_time="06:00"),
    )

    result = _evaluate(session_factory, [_item("p1", 1, "100000")])

    assert result.discount_amount == Decimal("0")


def _flash(start: str | None, end: str | None) -> FlashSaleRule:
    return FlashSaleRule(
        id=uuid4(), name="flash", discount_percent=Decimal("10"), daily_start_time=start, daily_end_time=end
    )


def _at(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, second, tzinfo=timezone.utc)


def test_flash_window_edges_are_inclusive(monkeypatch) -> None:
    monkeypatch.setattr(settings, "pricing_timezone", "UTC")
    rule = _flash("9:00", "17:00")

    assert rule.daily_start_time == time(9, 0)
    assert within_daily_window(rule, _at(9, 0))
    assert within_daily_window(rule, _at(17, 0, 59))
    assert not within_daily_window(rule, _at(8, 59, 59))
    assert not within_daily_window(rule, _at(17, 1))


def test_overnight_flash_window_never_matches(monkeypatch, caplog) -> None:
    monkeypatch.setattr(settings, "pricing_timezone", "UTC")
    rule = _flash("22:00", "02:00")

    with caplog.at_level(logging.WARNING, logger="app.services.promotions"):
        assert not within_daily_window(rule, _at(23, 0))
        assert not within_daily_window(rule, _at(1, 0))

    assert any(record.getMessage() == "flash_sale_overnight_window" for record in caplog.records)


def test_flash_sale_without_times_is_always_open() -> None:
    assert within_daily_window(_flash(None, None), _at(3, 17))


def test_stacking_applies_every_matching_rule(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.order_threshold, min_order_value="100000", discount_percent="10"),
        make_rule(PromotionRuleType.category_bundle, applicable_category_id="A", discount_percent="20"),
    )

    result = _evaluate(session_factory, [_item("p1", 1, "100000", "A"), _item("p2", 1, "100000", "B")])

    assert result.subtotal == Decimal("200000")
    assert result.discount_amount == Decimal("40000")
    assert len(result.applied_rules) == 2


def test_per_rule_cap_is_applied(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(
            PromotionRuleType.order_threshold,
            min_order_value="0",
            discount_percent="50",
            max_discount_amount="30000",
        ),
    )

    result = _evaluate(session_factory, [_item("p1", 1, "500000")])

    assert result.discount_amount == Decimal("30000")
    assert result.applied_rules[0].discount == Decimal("30000")


def test_stacked_discount_is_clamped_to_subtotal(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.order_threshold, min_order_value="0", discount_percent="70"),
        make_rule(PromotionRuleType.flash_sale, discount_percent="60"),
    )

    result = _evaluate(session_factory, [_item("p1", 1, "1000")])

    assert result.discount_amount == Decimal("1000")
    assert result.final_total == Decimal("0")


def test_code_bearing_inactive_and_expired_rules_are_ignored(session_factory, seed, make_rule) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.flash_sale, code="MANUAL10"),
        make_rule(PromotionRuleType.flash_sale, is_active=False),
        make_rule(
            PromotionRuleType.flash_sale,
            start_date=NOW - timedelta(days=10),
            end_date=NOW - timedelta(days=5),
        ),
        make_rule(
            PromotionRuleType.flash_sale,
            start_date=NOW + timedelta(hours=1),
            end_date=NOW + timedelta(days=5),
        ),
    )

    result = _evaluate(session_factory, [_item("p1", 1, "100000")])

    assert result.discount_amount == Decimal("0")
    assert result.applied_rules == []


def test_malformed_rule_row_is_skipped(session_factory, seed, make_rule, caplog) -> None:
    seed(
        session_factory,
        make_rule(PromotionRuleType.order_threshold, name="broken", min_order_value=None),
        make_rule(PromotionRuleType.flash_sale, name="ok", discount_percent="10"),
    )

    with caplog.at_level(logging.WARNING, logger="app.services.rule_catalog"):
        result = _evaluate(session_factory, [_item("p1", 1, "100000")])

    assert [rule.name for rule in result.applied_rules] == ["ok"]
    assert any(record.getMessage() == "promotion_rule_skipped" for record in caplog.records)


def test_catalog_failure_fails_open(session_factory, monkeypatch, caplog) -> None:
    async def _boom(*_args, **_kwargs):
        raise errors.InternalError("Promotion rules are unavailable")

    monkeypatch.setattr(rule_catalog, "list_active_rules", _boom)

    with caplog.at_level(logging.ERROR, logger="app.services.promotions"):
        result = _evaluate(session_factory, [_item("p1", 2, "100000")])

    assert result.subtotal == Decimal("200000")
    assert result.discount_amount == Decimal("0")
    assert result.final_total == Decimal("200000")
    assert any(record.getMessage() == "automatic_promotions_failed_open" for record in caplog.records)


def test_rule_evaluation_failure_fails_open(session_factory, seed, make_rule, monkeypatch, caplog) -> None:
    seed(session_factory, make_rule(PromotionRuleType.flash_sale, discount_percent="10"))

    def _broken_rule(*_args, **_kwargs):
        raise RuntimeError("rule blew up")

    monkeypatch.setattr(promotions_service, "rule_discount", _broken_rule)

    with caplog.at_level(logging.ERROR, logger="app.services.promotions"):
        result = _evaluate(session_factory, [_item("p1", 1, "100")])

    assert result.subtotal == Decimal("100")
    assert result.discount_amount == Decimal("0")
    assert result.final_total == Decimal("100")
    assert result.applied_rules == []
    assert any(record.getMessage() == "automatic_promotions_failed_open" for record in caplog.records)


def test_empty_cart_is_zero(session_factory) -> None:
    result = _evaluate(session_factory, [])

    assert result.subtotal == Decimal("0")
    assert result.final_total == Decimal("0")


@pytest.mark.parametrize(
    ("item", "field"),
    [
        (_item("p1", 0, "1000"), "items[0].quantity"),
        (_item("p1", 1, "-1"), "items[0].unit_price"),
        (_item("", 1, "1000"), "items[0].product_id"),
        (_item("p1", 1, "1e30"), "items[0].unit_price"),
        (_item("p1", 1, "10.005"), "items[0].unit_price"),
    ],
)
def test_malformed_cart_lines_raise(session_factory, item, field) -> None:
    with pytest.raises(errors.ValidationError) as excinfo:
        _evaluate(session_factory, [item])

    assert excinfo.value.field == field
