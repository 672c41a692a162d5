"""
Category -- a named step of a work pipeline.

Responsibility:
    Value objects for work categories (뽑기, 자르기, 포장, 운송, ...) and the
    rate items priced under each category.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O. Mutation of the
    collection is owned by ``fieldwork_kernel.domain.category_graph``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from fieldwork_kernel.domain.values import to_decimal
from fieldwork_kernel.exceptions import ValidationError


def require_name(value: str | None, field_name: str = "name") -> str:
    """Strip ``value`` and reject it when blank."""
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationError(f"{field_name} must not be empty", field=field_name)
    return stripped


@dataclass(frozen=True)
class CategoryRate:
    """
    A priced work item under a category (세부 작업 단가).

    Guarantees:
        - ``name`` and ``unit`` are non-empty.
        - ``default_price`` is a non-negative Decimal.
    """

    id: str
    name: str
    default_price: Decimal
    unit: str
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", require_name(self.name))
        object.__setattr__(self, "unit", require_name(self.unit, "unit"))
        price = to_decimal(self.default_price, "default_price")
        if price < 0:
            raise ValidationError(
                f"default_price must not be negative: {price}", field="default_price"
            )
        object.__setattr__(self, "default_price", price)


@dataclass(frozen=True)
class Category:
    """
    A work category with an optional single successor.

    Contract:
        ``next_category_id`` points at the next step of the pipeline or is
        None at the end of a chain. ``order`` is a display position hint
        maintained by the graph.
    """

    id: str
    name: str
    order: int = 0
    next_category_id: str | None = None
    description: str | None = None
    rates: tuple[CategoryRate, ...] = field(default_factory=tuple)

    def find_rate(self, rate_id: str) -> CategoryRate | None:
        for rate in self.rates:
            if rate.id == rate_id:
                return rate
        return None
