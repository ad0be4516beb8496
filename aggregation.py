# aggregation.py
"""Emission totals, scope subtotals and per-category breakdowns.

``summarize_emissions`` is a pure function over records that already carry
their category's name and scope. Filtering by company and date happens in the
query that fetches the records (see ``storage.get_emissions``).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, NamedTuple

ZERO = Decimal("0")
HUNDRED = Decimal("100")
ONE_PLACE = Decimal("0.1")


class Scope(str, enum.Enum):
    """GHG-protocol scope of an emission category."""

    SCOPE_1 = "Scope 1"
    SCOPE_2 = "Scope 2"
    SCOPE_3 = "Scope 3"

    @classmethod
    def parse(cls, value: Any) -> "Scope":
        """Coerce ``value`` to a Scope, tolerating case and spacing differences.

        Raises ``ValueError`` for anything that is not one of the three scopes.
        """
        if isinstance(value, cls):
            return value
        normalized = " ".join(str(value).split()).lower()
        for member in cls:
            if normalized in (member.value.lower(), member.value.lower().replace(" ", "")):
                return member
        raise ValueError(f"Unknown emission scope: {value!r}")

    def __str__(self) -> str:
        return self.value


def to_decimal(value: Any) -> Decimal:
    """Parse an amount (number or numeric string) into a finite Decimal."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid emission amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        # shortest repr: 0.1 -> Decimal("0.1")
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid emission amount: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Invalid emission amount: {value!r}")
    return result


class EmissionLine(NamedTuple):
    """One emission joined with its category."""

    amount: Decimal
    category_id: int
    category_name: str
    scope: Scope

    @classmethod
    def from_emission(cls, emission) -> "EmissionLine":
        """Build a line from an ``Emission`` row with its ``category`` loaded."""
        category = emission.category
        return cls(
            amount=to_decimal(emission.amount),
            category_id=category.id,
            category_name=category.name,
            scope=Scope.parse(category.scope),
        )


@dataclass(frozen=True)
class CategoryBreakdown:
    category_id: int
    name: str
    scope: Scope
    amount: Decimal
    share: Decimal  # percent of the total, unrounded

    @property
    def percentage(self) -> Decimal:
        return self.share.quantize(ONE_PLACE, rounding=ROUND_HALF_UP)

    def to_dict(self) -> dict:
        return {
            "categoryId": self.category_id,
            "name": self.name,
            "scope": self.scope.value,
            "amount": float(self.amount),
            "percentage": float(self.percentage),
        }


@dataclass(frozen=True)
class EmissionsSummary:
    total: Decimal
    scope1: Decimal
    scope2: Decimal
    scope3: Decimal
    by_category: tuple[CategoryBreakdown, ...]

    def scope_total(self, scope: Scope) -> Decimal:
        return {
            Scope.SCOPE_1: self.scope1,
            Scope.SCOPE_2: self.scope2,
            Scope.SCOPE_3: self.scope3,
        }[Scope.parse(scope)]

    def to_dict(self) -> dict:
        """JSON shape served by ``GET /emissions/summary``."""
        return {
            "total": float(self.total),
            "scope1": float(self.scope1),
            "scope2": float(self.scope2),
            "scope3": float(self.scope3),
            "byCategory": [entry.to_dict() for entry in self.by_category],
        }


def _field(record: Mapping, *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    raise KeyError(keys[0])


def _coerce(record: Any) -> EmissionLine:
    if isinstance(record, EmissionLine):
        return record._replace(amount=to_decimal(record.amount), scope=Scope.parse(record.scope))
    if isinstance(record, Mapping):
        amount = to_decimal(_field(record, "amount"))
        category = record.get("category")
        if isinstance(category, Mapping):
            # serialized emission: {"amount": ..., "category": {"id", "name", "scope"}}
            return EmissionLine(amount, _field(category, "id"), _field(category, "name"),
                                Scope.parse(_field(category, "scope")))
        return EmissionLine(
            amount=amount,
            category_id=_field(record, "category_id", "categoryId"),
            category_name=_field(record, "category_name", "categoryName"),
            scope=Scope.parse(_field(record, "scope")),
        )
    return EmissionLine.from_emission(record)


def summarize_emissions(records: Iterable[Any]) -> EmissionsSummary:
    """Aggregate ``records`` into totals, scope subtotals and category shares.

    ``records`` may be ``EmissionLine`` tuples, mappings with the same keys in
    snake_case or camelCase, serialized emissions with a nested ``category``, or
    ``Emission`` rows with their category loaded. Categories keep the order in
    which they were first seen. Percentages are derived only after the total
    is known.
    """
    lines = [_coerce(record) for record in records]

    scope_totals = {scope: ZERO for scope in Scope}
    buckets: dict[int, list] = {}
    for line in lines:
        scope_totals[line.scope] += line.amount
        bucket = buckets.setdefault(line.category_id, [ZERO, line.category_name, line.scope])
        bucket[0] += line.amount
    total = sum(scope_totals.values(), ZERO)

    by_category = tuple(
        CategoryBreakdown(
            category_id=category_id,
            name=name,
            scope=scope,
            amount=amount,
            share=(amount / total * HUNDRED) if total > 0 else ZERO,
        )
        for category_id, (amount, name, scope) in buckets.items()
    )
    return EmissionsSummary(
        total=total,
        scope1=scope_totals[Scope.SCOPE_1],
        scope2=scope_totals[Scope.SCOPE_2],
        scope3=scope_totals[Scope.SCOPE_3],
        by_category=by_category,
    )


def format_percentage(value: Any) -> str:
    """Render a percentage with one decimal place, e.g. ``"33.3"``."""
    return str(to_decimal(value).quantize(ONE_PLACE, rounding=ROUND_HALF_UP))
