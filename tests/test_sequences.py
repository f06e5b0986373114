from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import SequenceCounter
from services import SequenceAllocator, StorageUnavailable, ValidationError


def test_first_allocation_starts_counter_at_one() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        allocator = SequenceAllocator(session)
        assert allocator.current("expense") == 0
        assert allocator.next_id("expense") == 1
        assert allocator.next_id("expense") == 2
        session.commit()

        counter = session.get(SequenceCounter, "expense")
        assert counter.seq == 2


def test_counters_are_independent_per_entity_type() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        allocator = SequenceAllocator(session)
        assert allocator.next_id("user") == 1
        assert allocator.next_id("expense") == 1
        assert allocator.next_id("user") == 2
        assert allocator.next_id("budget") == 1
        session.commit()

        assert allocator.current("user") == 2
        assert allocator.current("expense") == 1
        assert allocator.current("category") == 0


def test_rolled_back_allocation_is_reissued() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        allocator = SequenceAllocator(session)
        assert allocator.next_id("expense") == 1
        session.commit()

        assert allocator.next_id("expense") == 2
        session.rollback()

        assert allocator.next_id("expense") == 2
        session.commit()


def test_blank_entity_type_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValidationError):
            SequenceAllocator(session).next_id("")


def test_concurrent_allocations_are_unique_and_gap_free(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)

    def allocate(_: int) -> int:
        with Session(engine) as session:
            value = SequenceAllocator(session).next_id("expense")
            session.commit()
            return value

    with ThreadPoolExecutor(max_workers=8) as pool:
        values = list(pool.map(allocate, range(40)))

    assert len(set(values)) == 40
    assert sorted(values) == list(range(1, 41))

    with Session(engine) as session:
        assert SequenceAllocator(session).current("expense") == 40


def test_unreachable_store_raises_storage_unavailable(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'ledger.db'}")

    with Session(engine) as session:
        with pytest.raises(StorageUnavailable):
            SequenceAllocator(session).next_id("expense")
