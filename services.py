from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import wraps
from typing import Optional, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

import stats
from models import Budget, Category, Expense, SequenceCounter, User
from periods import Month, parse_month
from schemas import BudgetIn, BudgetOut, ExpenseIn, ExpenseOut, ProfileOut

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Food", "#ef4444"),
    ("Transport", "#3b82f6"),
    ("Entertainment", "#a855f7"),
    ("Shopping", "#ec4899"),
    ("Utilities", "#f59e0b"),
    ("Health", "#10b981"),
    ("Other", "#6b7280"),
]
DEMO_USERNAME = "demo"
DEMO_PASSWORD = "password"


class LedgerError(Exception):
    pass


class ValidationError(LedgerError, ValueError):
    pass


class DuplicateKey(LedgerError):
    pass


class NotFound(LedgerError, ValueError):
    pass


class AuthenticationFailed(LedgerError):
    pass


class StorageUnavailable(LedgerError):
    pass


def storage_guard(method):
    """Turn driver-level connectivity failures into ``StorageUnavailable``."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (OperationalError, DisconnectionError) as exc:
            self.session.rollback()
            logger.error(
                f"storage_unavailable: op={method.__qualname__} error={exc}"
            )
            raise StorageUnavailable("Storage is unavailable") from exc

    return wrapper


def _commit_unique(session: Session, message: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.info(f"duplicate_key: {message}")
        raise DuplicateKey(message) from exc


def _as_month(month: Union[Month, str]) -> Month:
    if isinstance(month, Month):
        return month
    try:
        return parse_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


class SequenceAllocator:
    """Hands out per-entity-type ids from the ``sequence_counters`` table.

    The increment runs inside the caller's transaction. Until that
    transaction ends the counter row stays locked (a row lock on PostgreSQL,
    the database write lock on SQLite), so concurrent callers queue up
    instead of reading the same value. Rolling back the caller's work also
    returns the id.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.counters = SequenceCounter.__table__

    def _increment(self, entity_type: str) -> Optional[int]:
        stmt = (
            update(self.counters)
            .where(self.counters.c.name == entity_type)
            .values(seq=self.counters.c.seq + 1)
            .returning(self.counters.c.seq)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _create_counter(self, entity_type: str) -> None:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise LedgerError(f"Sequence counters are not supported on {dialect}")
        stmt = (
            insert(self.counters)
            .values(name=entity_type, seq=0)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        self.session.execute(stmt)

    @storage_guard
    def next_id(self, entity_type: str) -> int:
        if not entity_type:
            raise ValidationError("Entity type is required")
        value = self._increment(entity_type)
        if value is None:
            self._create_counter(entity_type)
            logger.info(f"sequence_created: name={entity_type}")
            value = self._increment(entity_type)
            if value is None:
                raise LedgerError(f"Sequence counter {entity_type} vanished")
        return value

    @storage_guard
    def current(self, entity_type: str) -> int:
        value = self.session.execute(
            select(self.counters.c.seq).where(self.counters.c.name == entity_type)
        ).scalar_one_or_none()
        return value or 0


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    @storage_guard
    def create(
        self,
        username: str,
        password: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Missing username or password")
        user = User(
            id=SequenceAllocator(self.session).next_id("user"),
            username=username,
            password=generate_password_hash(password),
            email=email,
            phone=phone,
        )
        self.session.add(user)
        _commit_unique(self.session, "Username already taken")
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id}")
        return user

    @storage_guard
    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    @storage_guard
    def find_by_username(self, username: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.username == username))

    def authenticate(self, username: str, password: str) -> User:
        if not username or not password:
            raise ValidationError("Missing username or password")
        user = self.find_by_username(username.strip())
        if not user or not check_password_hash(user.password, password):
            raise AuthenticationFailed("Invalid credentials")
        return user

    @storage_guard
    def update_profile(
        self,
        user_id: int,
        username: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required")
        user = self.get(user_id)
        user.username = username
        user.email = email
        user.phone = phone
        _commit_unique(self.session, "Username already taken")
        self.session.refresh(user)
        return user

    @storage_guard
    def change_password(
        self, user_id: int, old_password: str, new_password: str
    ) -> None:
        if not old_password or not new_password:
            raise ValidationError("Old password and new password are required")
        user = self.get(user_id)
        if not check_password_hash(user.password, old_password):
            raise AuthenticationFailed("Old password is incorrect")
        user.password = generate_password_hash(new_password)
        self.session.commit()
        logger.info(f"password_changed: user_id={user_id}")

    @storage_guard
    def profile(self, user_id: int) -> ProfileOut:
        user = self.get(user_id)
        count, total = self.session.execute(
            select(
                func.count(Expense.id),
                func.coalesce(func.sum(Expense.amount_cents), 0),
            ).where(Expense.user_id == user_id)
        ).one()
        return ProfileOut(
            id=user.id,
            username=user.username,
            email=user.email,
            phone=user.phone,
            created_at=user.created_at,
            expenses_count=int(count or 0),
            total_spent=int(total or 0),
        )

    @storage_guard
    def delete(self, user_id: int) -> bool:
        # Expenses and budgets carry no foreign keys; remove them explicitly.
        expenses = self.session.execute(
            delete(Expense).where(Expense.user_id == user_id)
        )
        budgets = self.session.execute(delete(Budget).where(Budget.user_id == user_id))
        users = self.session.execute(delete(User).where(User.id == user_id))
        self.session.commit()
        logger.info(
            f"user_deleted: id={user_id} existed={users.rowcount > 0} "
            f"expenses={expenses.rowcount} budgets={budgets.rowcount}"
        )
        return users.rowcount > 0


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    @storage_guard
    def list_all(self) -> list[Category]:
        return self.session.scalars(select(Category).order_by(Category.id)).all()

    @storage_guard
    def find_by_ids(self, category_ids: Iterable[int]) -> list[Category]:
        ids = set(category_ids)
        if not ids:
            return []
        return self.session.scalars(
            select(Category).where(Category.id.in_(ids)).order_by(Category.id)
        ).all()

    @storage_guard
    def count(self) -> int:
        return self.session.execute(select(func.count(Category.id))).scalar_one()

    @storage_guard
    def create(self, name: str, color: str) -> Category:
        name = (name or "").strip()
        if not name or not color:
            raise ValidationError("Category name and color are required")
        category = Category(
            id=SequenceAllocator(self.session).next_id("category"),
            name=name,
            color=color,
        )
        self.session.add(category)
        _commit_unique(self.session, "Category with this name already exists")
        self.session.refresh(category)
        return category


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @storage_guard
    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            id=SequenceAllocator(self.session).next_id("expense"),
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            description=data.description,
            date=data.date,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def _ordered(self):
        return (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )

    @storage_guard
    def list(self) -> list[ExpenseOut]:
        expenses = self.session.scalars(self._ordered()).all()
        categories = stats.category_map(
            CategoryService(self.session).find_by_ids(e.category_id for e in expenses)
        )
        items = []
        for expense in expenses:
            name, color = stats.resolve_category(categories, expense.category_id)
            items.append(
                ExpenseOut(
                    id=expense.id,
                    amount_cents=expense.amount_cents,
                    category_id=expense.category_id,
                    category_name=name,
                    category_color=color,
                    description=expense.description,
                    date=expense.date,
                )
            )
        return items

    @storage_guard
    def list_for_month(self, month: Union[Month, str]) -> list[Expense]:
        period = _as_month(month)
        stmt = self._ordered().where(Expense.date.between(period.start, period.end))
        return self.session.scalars(stmt).all()

    @storage_guard
    def delete(self, expense_id: int) -> bool:
        result = self.session.execute(
            delete(Expense).where(
                Expense.id == expense_id, Expense.user_id == self.user_id
            )
        )
        self.session.commit()
        return result.rowcount > 0


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @storage_guard
    def find(self, category_id: int, month: Union[Month, str]) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id,
                Budget.category_id == category_id,
                Budget.month == _as_month(month).slug,
            )
        )

    @storage_guard
    def create(self, data: BudgetIn) -> Budget:
        budget = Budget(
            id=SequenceAllocator(self.session).next_id("budget"),
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            month=_as_month(data.month).slug,
        )
        self.session.add(budget)
        _commit_unique(self.session, "Budget already exists for this month")
        self.session.refresh(budget)
        return budget

    @storage_guard
    def replace_amount(self, budget_id: int, amount_cents: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFound("Budget not found")
        budget.amount_cents = amount_cents
        self.session.commit()
        self.session.refresh(budget)
        return budget

    @storage_guard
    def upsert(self, data: BudgetIn) -> Budget:
        existing = self.find(data.category_id, data.month)
        if existing:
            return self.replace_amount(existing.id, data.amount_cents)
        try:
            return self.create(data)
        except DuplicateKey:
            # Lost the insert race; the winner's row is updated instead.
            winner = self.find(data.category_id, data.month)
            if winner is None:
                raise
            logger.info(
                f"budget_upsert_retry: user_id={self.user_id} "
                f"category_id={data.category_id} month={data.month}"
            )
            return self.replace_amount(winner.id, data.amount_cents)

    @storage_guard
    def list_for_month(self, month: Union[Month, str]) -> list[BudgetOut]:
        period = _as_month(month)
        budgets = self.session.scalars(
            select(Budget)
            .where(Budget.user_id == self.user_id, Budget.month == period.slug)
            .order_by(Budget.id)
        ).all()
        categories = stats.category_map(
            CategoryService(self.session).find_by_ids(b.category_id for b in budgets)
        )
        return [
            BudgetOut(
                id=budget.id,
                category_id=budget.category_id,
                category_name=stats.resolve_category(categories, budget.category_id)[0],
                amount_cents=budget.amount_cents,
                month=budget.month,
            )
            for budget in budgets
        ]


class StatsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def monthly_summary(self, month: Union[Month, str]) -> dict[str, object]:
        period = _as_month(month)
        expenses = ExpenseService(self.session, self.user_id).list_for_month(period)
        categories = CategoryService(self.session).find_by_ids(
            e.category_id for e in expenses
        )
        summary = stats.monthly_summary(expenses, categories)
        summary["month"] = period.slug
        return summary


def seed_defaults(session: Session, *, demo_user: bool = True) -> None:
    categories = CategoryService(session)
    if categories.count() == 0:
        allocator = SequenceAllocator(session)
        for name, color in DEFAULT_CATEGORIES:
            session.add(
                Category(id=allocator.next_id("category"), name=name, color=color)
            )
        try:
            _commit_unique(session, "Default categories already seeded")
            logger.info(f"seed_categories: created={len(DEFAULT_CATEGORIES)}")
        except DuplicateKey:
            logger.info("seed_categories: skipped, seeded concurrently")

    if not demo_user:
        return
    users = UserService(session)
    user_count = session.execute(select(func.count(User.id))).scalar_one()
    if user_count == 0:
        try:
            user = users.create(DEMO_USERNAME, DEMO_PASSWORD)
            logger.info(f"seed_demo_user: id={user.id}")
        except DuplicateKey:
            logger.info("seed_demo_user: skipped, seeded concurrently")
