from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from app.schemas.pricing import CartLine
from app.schemas.promotions import ComboRequirementSpec


def aggregate_quantities(lines: Iterable[CartLine]) -> Counter[str]:
    """Total requested quantity per product; a product may span several lines."""
    quantities: Counter[str] = Counter()
    for line in lines:
        quantities[line.product_id] += line.quantity
    return quantities


def combo_satisfied(lines: Iterable[CartLine], requirements: Sequence[ComboRequirementSpec]) -> bool:
    # All-or-nothing: every requirement must be met, and a combo without requirements never triggers.
    if not requirements:
        return False
    quantities = aggregate_quantities(lines)
    return all(quantities[req.product_id] >= req.required_quantity for req in requirements)
