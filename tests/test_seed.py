from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import User
from services import (
    DEFAULT_CATEGORIES,
    CategoryService,
    SequenceAllocator,
    UserService,
    seed_defaults,
)


def test_seed_creates_default_categories_in_order_and_demo_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_defaults(session)

        categories = CategoryService(session).list_all()
        assert [(c.id, c.name, c.color) for c in categories] == [
            (1, "Food", "#ef4444"),
            (2, "Transport", "#3b82f6"),
            (3, "Entertainment", "#a855f7"),
            (4, "Shopping", "#ec4899"),
            (5, "Utilities", "#f59e0b"),
            (6, "Health", "#10b981"),
            (7, "Other", "#6b7280"),
        ]
        demo = UserService(session).authenticate("demo", "password")
        assert demo.id == 1


def test_seed_is_idempotent() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_defaults(session)
        seed_defaults(session)

        assert CategoryService(session).count() == len(DEFAULT_CATEGORIES)
        assert session.scalar(select(func.count(User.id))) == 1
        allocator = SequenceAllocator(session)
        assert allocator.current("category") == len(DEFAULT_CATEGORIES)
        assert allocator.current("user") == 1


def test_seed_skips_demo_user_when_users_exist_or_disabled() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_defaults(session, demo_user=False)
        assert session.scalar(select(func.count(User.id))) == 0

        UserService(session).create("alice", "pw")
        seed_defaults(session)
        assert UserService(session).find_by_username("demo") is None
