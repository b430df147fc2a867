from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import CatalogProduct
from app.schemas.pricing import CartLine
from app.services import errors


@dataclass(frozen=True)
class CatalogEntry:
    product_id: str
    category_id: str | None
    price: Decimal


class CatalogLookup(Protocol):
    async def get_products(self, product_ids: Iterable[str]) -> dict[str, CatalogEntry]: ...


class SqlCatalogLookup:
    """Reads the local catalog mirror table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_products(self, product_ids: Iterable[str]) -> dict[str, CatalogEntry]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = (await self.session.execute(select(CatalogProduct).where(CatalogProduct.product_id.in_(ids)))).scalars().all()
        return {
            row.product_id: CatalogEntry(product_id=row.product_id, category_id=row.category_id, price=Decimal(row.price))
            for row in rows
        }


async def reprice_cart_lines(lines: Sequence[CartLine], lookup: CatalogLookup) -> list[CartLine]:
    """Replace caller-supplied prices and categories with current catalog values."""
    products = await lookup.get_products(line.product_id for line in lines)
    repriced: list[CartLine] = []
    for idx, line in enumerate(lines):
        entry = products.get(line.product_id)
        if entry is None:
            raise errors.ValidationError(f"items[{idx}].product_id", f"unknown product {line.product_id!r}")
        repriced.append(line.model_copy(update={"unit_price": entry.price, "category_id": entry.category_id}))
    return repriced
