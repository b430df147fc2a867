import asyncio
import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.ext import asyncio as sa_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.db.base import Base  # noqa: E402
from app.db.session import build_engine, build_session_factory  # noqa: E402
from app.models.coupon import Coupon, CouponType  # noqa: E402
from app.models.promotion import ComboRequirement, PromotionRule, PromotionRuleType  # noqa: E402

NOW = datetime(2026, 3, 10, 5, 0, tzinfo=timezone.utc)


_TRACKED_ENGINES: list[sa_asyncio.AsyncEngine] = []


def _run(coro):
    return asyncio.run(coro)


def _make_factory(url: str, **kwargs) -> async_sessionmaker[AsyncSession]:
    engine = build_engine(url, **kwargs)
    _TRACKED_ENGINES.append(engine)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    _run(init_models())
    return build_session_factory(engine)


@pytest.fixture(autouse=True)
def _dispose_tracked_async_engines() -> Generator[None, None, None]:
    start_index = len(_TRACKED_ENGINES)
    yield
    pending = _TRACKED_ENGINES[start_index:]
    if not pending:
        return

    async def _dispose_all() -> None:
        for engine in pending:
            await engine.dispose()

    _run(_dispose_all())
    del _TRACKED_ENGINES[start_index:]


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return _make_factory("sqlite+aiosqlite:///:memory:")


@pytest.fixture
def file_session_factory(tmp_path: Path) -> async_sessionmaker[AsyncSession]:
    # Separate connections per session so concurrent redemptions really contend.
    return _make_factory(f"sqlite+aiosqlite:///{tmp_path / 'pricing.db'}", connect_args={"timeout": 30})


@pytest.fixture
def seed() -> Callable[..., None]:
    def _seed(factory: async_sessionmaker[AsyncSession], *objects) -> None:
        async def _add() -> None:
            async with factory() as session:
                session.add_all(list(objects))
                await session.commit()

        _run(_add())

    return _seed


@pytest.fixture
def make_rule() -> Callable[..., PromotionRule]:
    def _make(
        type: PromotionRuleType,
        *,
        name: str | None = None,
        discount_percent: str | None = "10",
        requirements: dict[str, int] | None = None,
        start_date: datetime = NOW - timedelta(days=1),
        end_date: datetime = NOW + timedelta(days=1),
        **fields,
    ) -> PromotionRule:
        for key in ("min_order_value", "max_discount_amount"):
            if fields.get(key) is not None:
                fields[key] = Decimal(str(fields[key]))
        rule = PromotionRule(
            name=name or f"{type.value} rule",
            type=type,
            is_active=fields.pop("is_active", True),
            start_date=start_date,
            end_date=end_date,
            discount_percent=Decimal(discount_percent) if discount_percent is not None else None,
            **fields,
        )
        for product_id, quantity in (requirements or {}).items():
            rule.requirements.append(ComboRequirement(product_id=product_id, required_quantity=quantity))
        return rule

    return _make


@pytest.fixture
def make_coupon() -> Callable[..., Coupon]:
    def _make(
        code: str = "SAVE10",
        *,
        type: CouponType = CouponType.percentage,
        value: str = "10",
        valid_from: datetime = NOW - timedelta(days=1),
        valid_until: datetime = NOW + timedelta(days=1),
        **fields,
    ) -> Coupon:
        for key in ("min_order_amount", "max_discount_amount"):
            if fields.get(key) is not None:
                fields[key] = Decimal(str(fields[key]))
        return Coupon(
            code=code.strip().upper(),
            name=fields.pop("name", code),
            type=type,
            value=Decimal(value),
            is_active=fields.pop("is_active", True),
            used_count=fields.pop("used_count", 0),
            valid_from=valid_from,
            valid_until=valid_until,
            **fields,
        )

    return _make
