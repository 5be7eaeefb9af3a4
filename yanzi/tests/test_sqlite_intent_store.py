from __future__ import annotations

from pathlib import Path

import pytest

from yanzi.config import StoreConfig
from yanzi.core.errors import (
    DuplicateHash,
    DuplicateID,
    MissingField,
    NotFound,
    StorageError,
    StoreClosedError,
)
from yanzi.core.hashing.intent_hash import seal_intent
from yanzi.core.model.intent import IntentRecord
from yanzi.core.storage.sqlite_store import SQLiteIntentStore, open_store


def _record(i: int, created_at: str = "", **overrides) -> IntentRecord:
    fields = dict(
        id=f"intent-{i}",
        created_at=created_at or f"2026-02-09T10:00:{i % 60:02d}Z",
        author="alice",
        source_type="cli",
        prompt=f"prompt {i}",
        response=f"response {i}",
    )
    fields.update(overrides)
    return seal_intent(IntentRecord(**fields))


@pytest.fixture()
def store(tmp_path: Path):
    s = open_store(tmp_path / "yanzi.db")
    s.migrate()
    yield s
    s.close()


def test_open_rejects_blank_path():
    with pytest.raises(StorageError):
        open_store(" ")
    with pytest.raises(StorageError):
        open_store("")


def test_open_fails_for_unreachable_path(tmp_path: Path):
    with pytest.raises(StorageError):
        open_store(tmp_path / "missing-dir" / "db.sqlite")


def test_create_get_and_get_by_hash_roundtrip(store: SQLiteIntentStore) -> None:
    rec = seal_intent(
        IntentRecord(
            id="01HZYFQ7T9ZV54X2G4A8M4J2C1",
            created_at="2026-02-09T10:00:00.123456789Z",
            author="alice",
            source_type="cli",
            title="hello",
            prompt="prompt",
            response="response",
            meta='{"env":"prod"}',
            prev_hash="prevhash",
        )
    )
    store.create(rec)

    assert store.get(rec.id) == rec
    assert store.get_by_hash(rec.hash) == rec
    assert store.get(rec.id).meta == '{"env":"prod"}'


def test_optional_fields_roundtrip_as_absent(store: SQLiteIntentStore) -> None:
    rec = _record(1)
    store.create(rec)
    loaded = store.get(rec.id)
    assert loaded.title is None
    assert loaded.meta is None
    assert loaded.prev_hash is None
    assert loaded == rec


def test_stored_hash_is_kept_verbatim(store: SQLiteIntentStore) -> None:
    rec = _record(1).with_hash("hashvalue")
    store.create(rec)
    assert store.get_by_hash("hashvalue").id == rec.id


def test_duplicate_id_is_rejected(store: SQLiteIntentStore) -> None:
    store.create(_record(1))
    with pytest.raises(DuplicateID) as ei:
        store.create(_record(1, prompt="different content"))
    assert ei.value.record_id == "intent-1"


def test_duplicate_hash_is_rejected(store: SQLiteIntentStore) -> None:
    first = _record(1)
    store.create(first)
    with pytest.raises(DuplicateHash):
        store.create(_record(2).with_hash(first.hash))


def test_create_validates_record(store: SQLiteIntentStore) -> None:
    with pytest.raises(MissingField):
        store.create(_record(1).with_hash(""))
    assert store.list() == []


def test_get_missing_raises_not_found(store: SQLiteIntentStore) -> None:
    with pytest.raises(NotFound) as ei:
        store.get("nope")
    assert ei.value.key == "id"
    with pytest.raises(NotFound):
        store.get_by_hash("0" * 64)


def test_list_orders_by_created_at_descending(store: SQLiteIntentStore) -> None:
    for i in (3, 1, 2):
        store.create(_record(i))
    assert [r.id for r in store.list(10)] == ["intent-3", "intent-2", "intent-1"]


def test_list_orders_by_instant_not_spelling(store: SQLiteIntentStore) -> None:
    store.create(_record(1, created_at="2026-02-09T10:00:00Z"))
    store.create(_record(2, created_at="2026-02-09T10:00:00.5Z"))
    store.create(_record(3, created_at="2026-02-09T11:30:00+02:00"))  # 09:30Z
    assert [r.id for r in store.list()] == ["intent-2", "intent-1", "intent-3"]


def test_list_respects_limit(store: SQLiteIntentStore) -> None:
    for i in range(5):
        store.create(_record(i))
    assert len(store.list(2)) == 2
    assert store.list(2)[0].id == "intent-4"


def test_list_defaults_to_100_for_non_positive_limit(store: SQLiteIntentStore) -> None:
    for i in range(105):
        store.create(_record(i, created_at=f"2026-02-09T10:{i // 60:02d}:{i % 60:02d}Z"))
    assert len(store.list(0)) == 100
    assert len(store.list(-5)) == 100
    assert len(store.list()) == 100
    assert len(store.list(105)) == 105


def test_default_limit_comes_from_config(tmp_path: Path) -> None:
    cfg = StoreConfig(db_path=tmp_path / "y.db", default_list_limit=2)
    with SQLiteIntentStore(tmp_path / "y.db", cfg) as s:
        s.migrate()
        for i in range(3):
            s.create(_record(i))
        assert len(s.list()) == 2


def test_closed_store_rejects_operations(tmp_path: Path) -> None:
    s = open_store(tmp_path / "yanzi.db")
    s.migrate()
    s.close()
    s.close()
    assert s.closed
    with pytest.raises(StoreClosedError):
        s.get("x")
    with pytest.raises(StoreClosedError):
        s.migrate()


def test_context_manager_closes_on_error(tmp_path: Path) -> None:
    s = SQLiteIntentStore(tmp_path / "yanzi.db")
    with pytest.raises(NotFound):
        with s:
            s.migrate()
            s.get("missing")
    assert s.closed


def test_records_persist_across_handles(tmp_path: Path) -> None:
    db = tmp_path / "yanzi.db"
    rec = _record(7)
    with open_store(db) as s:
        s.migrate()
        s.create(rec)
    with open_store(db) as s:
        assert s.migrate() == []
        assert s.get(rec.id) == rec


def test_store_has_no_mutation_api() -> None:
    for name in ("update", "delete", "remove", "upsert"):
        assert not hasattr(SQLiteIntentStore, name)
