"""Monthly spending statistics.

Everything here is a pure function over an in-memory snapshot of expenses
that has already been narrowed to one user and one month. Amounts are
integer cents, exactly as stored.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Protocol

UNKNOWN_CATEGORY_NAME = "Unknown"
FALLBACK_COLOR = "#6b7280"


class ExpenseLike(Protocol):
    amount_cents: int
    category_id: int
    date: date


class CategoryLike(Protocol):
    id: int
    name: str
    color: str


def category_map(categories: Iterable[CategoryLike]) -> dict[int, CategoryLike]:
    return {category.id: category for category in categories}


def resolve_category(
    categories: Mapping[int, CategoryLike], category_id: int
) -> tuple[str, str]:
    """Return ``(name, color)`` for a category id, falling back for orphans."""
    category = categories.get(category_id)
    if category is None:
        return UNKNOWN_CATEGORY_NAME, FALLBACK_COLOR
    return category.name, category.color or FALLBACK_COLOR


def total_spent(expenses: Iterable[ExpenseLike]) -> int:
    return sum((expense.amount_cents for expense in expenses), 0)


def category_breakdown(
    expenses: Iterable[ExpenseLike], categories: Iterable[CategoryLike]
) -> list[dict[str, object]]:
    """Sum amounts per category.

    One entry per distinct ``category_id`` in the input, in order of first
    appearance, so a given input always produces the same sequence.
    """
    lookup = category_map(categories)
    totals: dict[int, int] = {}
    for expense in expenses:
        totals[expense.category_id] = (
            totals.get(expense.category_id, 0) + expense.amount_cents
        )

    breakdown = []
    for category_id, value in totals.items():
        name, color = resolve_category(lookup, category_id)
        breakdown.append(
            {"category_id": category_id, "name": name, "value": value, "color": color}
        )
    return breakdown


def daily_spending(expenses: Iterable[ExpenseLike]) -> list[dict[str, object]]:
    """Sum amounts per calendar day, ascending by date."""
    totals: dict[date, int] = {}
    for expense in expenses:
        totals[expense.date] = totals.get(expense.date, 0) + expense.amount_cents
    return [
        {"date": day.isoformat(), "amount": totals[day]} for day in sorted(totals)
    ]


def monthly_summary(
    expenses: Iterable[ExpenseLike], categories: Iterable[CategoryLike]
) -> dict[str, object]:
    snapshot = list(expenses)
    return {
        "total_spent": total_spent(snapshot),
        "category_breakdown": category_breakdown(snapshot, categories),
        "daily_spending": daily_spending(snapshot),
    }
