import json

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from americano.database import StateEntry
from americano.storage import DatabaseStateStore, MemoryStateStore, StateStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def test_default_ttl_is_one_hour(clock):
    store = MemoryStateStore(clock=clock)
    assert store.ttl_seconds == 3600
    store.set("schedule", [1, 2, 3])
    clock.now += 3600
    assert store.get("schedule") == [1, 2, 3]


def test_expired_entry_is_removed(clock):
    store = MemoryStateStore(clock=clock)
    store.set("scores", {"0": [10, 6]}, ttl_seconds=60)

    clock.now += 61

    assert store.get("scores") is None
    assert "scores" not in store


def test_entry_records_value_and_expiry(clock):
    store = MemoryStateStore(clock=clock)
    store.set("currentRoundIndex", 2)
    entry = json.loads(store.entries["currentRoundIndex"])
    assert entry == {"value": 2, "expiry": int((clock.now + 3600) * 1000)}


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        json.dumps([1, 2]),
        json.dumps({"value": 1}),
        json.dumps({"value": 1, "expiry": "soon"}),
    ],
)
def test_corrupted_entry_reads_as_absent(clock, payload):
    store = MemoryStateStore(clock=clock)
    store.entries["schedule"] = payload

    assert store.get("schedule") is None
    assert "schedule" not in store


def test_missing_entry_is_absent(clock):
    assert MemoryStateStore(clock=clock).get("lastBenched") is None


def test_remove_and_clear(clock):
    store = MemoryStateStore(clock=clock)
    store.set("schedule", [])
    store.set("scores", {})
    store.remove("schedule")
    assert store.get("schedule") is None
    store.remove("schedule")
    store.clear()
    assert store.entries == {}


def test_database_store_round_trip(engine, clock):
    with Session(engine) as session:
        store = DatabaseStateStore(session, "abc", clock=clock)
        store.set("scores", {"0": [10, 6]})
        store.set("scores", {"0": [12, 4]})
        assert store.get("scores") == {"0": [12, 4]}

        other = DatabaseStateStore(session, "xyz", clock=clock)
        assert other.get("scores") is None

        rows = session.exec(select(StateEntry)).all()
        assert len(rows) == 1


def test_database_store_expiry_deletes_row(engine, clock):
    with Session(engine) as session:
        store = DatabaseStateStore(session, "abc", clock=clock)
        store.set("schedule", [1])
        clock.now += 3601
        assert store.get("schedule") is None
        assert session.exec(select(StateEntry)).all() == []


def test_database_store_clear_is_scoped(engine, clock):
    with Session(engine) as session:
        mine = DatabaseStateStore(session, "abc", clock=clock)
        theirs = DatabaseStateStore(session, "xyz", clock=clock)
        mine.set("schedule", [1])
        mine.set("scores", {})
        theirs.set("schedule", [2])

        mine.clear()

        assert mine.get("schedule") is None
        assert theirs.get("schedule") == [2]


def test_database_store_overwrite_updates_the_row(engine, clock):
    with Session(engine) as session:
        store = DatabaseStateStore(session, "abc", clock=clock)
        store.set("currentRoundIndex", 0)
        clock.now += 10
        store.set("currentRoundIndex", 3)

    with Session(engine) as session:
        rows = session.exec(select(StateEntry)).all()
    assert len(rows) == 1
    assert rows[0].session_id == "abc"
    assert rows[0].key == "currentRoundIndex"
    assert json.loads(rows[0].payload) == {"value": 3, "expiry": int((clock.now + 3600) * 1000)}


def test_database_store_corrupted_entry_reads_as_absent(engine, clock):
    with Session(engine) as session:
        session.add(StateEntry(session_id="abc", key="schedule", payload="{broken"))
        session.commit()

        store = DatabaseStateStore(session, "abc", clock=clock)

        assert store.get("schedule") is None
        assert session.exec(select(StateEntry)).all() == []


def test_state_store_requires_a_backend():
    with pytest.raises(TypeError):
        StateStore()
