import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import Budget
from schemas import BudgetIn
from services import (
    BudgetService,
    CategoryService,
    NotFound,
    SequenceAllocator,
    ValidationError,
)


def test_upsert_twice_keeps_the_same_budget() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session).create("Food", "#ef4444")
        budgets = BudgetService(session, user_id=1)

        first = budgets.upsert(
            BudgetIn(category_id=food.id, amount_cents=100, month="2024-05")
        )
        again = budgets.upsert(
            BudgetIn(category_id=food.id, amount_cents=100, month="2024-05")
        )
        assert again.id == first.id
        assert budgets.find(food.id, "2024-05").amount_cents == 100

        updated = budgets.upsert(
            BudgetIn(category_id=food.id, amount_cents=150, month="2024-05")
        )
        assert updated.id == first.id
        assert budgets.find(food.id, "2024-05").amount_cents == 150

        assert session.scalar(select(func.count(Budget.id))) == 1
        assert SequenceAllocator(session).current("budget") == 1


def test_budget_key_includes_user_category_and_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        base = BudgetService(session, user_id=1).upsert(
            BudgetIn(category_id=1, amount_cents=100, month="2024-05")
        )
        other_month = BudgetService(session, user_id=1).upsert(
            BudgetIn(category_id=1, amount_cents=100, month="2024-06")
        )
        other_category = BudgetService(session, user_id=1).upsert(
            BudgetIn(category_id=2, amount_cents=100, month="2024-05")
        )
        other_user = BudgetService(session, user_id=2).upsert(
            BudgetIn(category_id=1, amount_cents=100, month="2024-05")
        )

        ids = {base.id, other_month.id, other_category.id, other_user.id}
        assert ids == {1, 2, 3, 4}


def test_upsert_recovers_when_insert_loses_race(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        budgets = BudgetService(session, user_id=1)
        winner = budgets.upsert(
            BudgetIn(category_id=1, amount_cents=100, month="2024-05")
        )

        real_find = BudgetService.find
        calls = {"count": 0}

        def stale_find(self, category_id, month):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return real_find(self, category_id, month)

        monkeypatch.setattr(BudgetService, "find", stale_find)

        loser = budgets.upsert(
            BudgetIn(category_id=1, amount_cents=250, month="2024-05")
        )

        assert calls["count"] == 2
        assert loser.id == winner.id
        assert loser.amount_cents == 250
        assert session.scalar(select(func.count(Budget.id))) == 1
        assert SequenceAllocator(session).current("budget") == 1


def test_list_for_month_resolves_unknown_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session).create("Food", "#ef4444")
        budgets = BudgetService(session, user_id=1)
        budgets.upsert(BudgetIn(category_id=food.id, amount_cents=100, month="2024-05"))
        budgets.upsert(BudgetIn(category_id=99, amount_cents=40, month="2024-05"))
        budgets.upsert(BudgetIn(category_id=food.id, amount_cents=70, month="2024-06"))

        listed = budgets.list_for_month("2024-05")
        assert [(b.category_name, b.amount_cents) for b in listed] == [
            ("Food", 100),
            ("Unknown", 40),
        ]
        assert BudgetService(session, user_id=2).list_for_month("2024-05") == []


def test_replace_amount_rejects_foreign_budget() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        budget = BudgetService(session, user_id=1).upsert(
            BudgetIn(category_id=1, amount_cents=100, month="2024-05")
        )
        with pytest.raises(NotFound):
            BudgetService(session, user_id=2).replace_amount(budget.id, 5)


def test_malformed_month_is_a_validation_error() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValidationError):
            BudgetService(session, user_id=1).find(1, "2024-13")
