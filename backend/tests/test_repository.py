# backend/tests/test_repository.py
import json
from decimal import Decimal

import psycopg
import pytest

from bayad.db.repository import SessionRepository
from bayad.db.store import MemoryStore, PersistenceFailure, PostgresStore
from bayad.domain.history import HistoryStore
from bayad.domain.models import DiscountSpec, Item, Person


def test_absent_blobs_load_defaults():
    repo = SessionRepository(MemoryStore())
    assert [p.name for p in repo.load_people()] == ["Me"]
    assert repo.load_items() == []
    assert repo.load_discount() == DiscountSpec()
    assert repo.load_paid() == {}
    assert repo.load_history() == []


@pytest.mark.parametrize(
    "blob",
    [
        b"not json",
        b"\xff\xfe",
        b"{}",
        b"[]",
        b'[{"id": "", "name": "x"}]',
        b'[{"id": "1", "name": "A"}, {"id": "1", "name": "B"}]',
    ],
)
def test_corrupt_people_blob_falls_back_to_default_person(blob):
    repo = SessionRepository(MemoryStore({"bayad:people": blob}))
    assert [(p.id, p.name) for p in repo.load_people()] == [("1", "Me")]


def test_corrupt_other_blobs_fall_back():
    store = MemoryStore(
        {
            "bayad:items": b'[{"id": "i1", "name": "Tea", "price": "-3"}]',
            "bayad:discount": b'{"mode": "percent", "amount": "5"}',
            "bayad:paid": b"[1, 2]",
            "bayad:history": b'[{"id": "b1"}]',
        }
    )
    repo = SessionRepository(store)
    assert repo.load_items() == []
    assert repo.load_discount() == DiscountSpec()
    assert repo.load_paid() == {}
    assert repo.load_history() == []


def _bill_blob(total, share):
    bill = {
        "id": "b1",
        "created_at": "2024-05-01T12:00:00+00:00",
        "title": "Lunch",
        "total": total,
        "results": [
            {
                "person": {"id": "a", "name": "Ana"},
                "line_items": [{"item_name": "Lunch", "share": share}],
                "subtotal": "10",
                "total": "10",
            }
        ],
    }
    return json.dumps([bill]).encode("utf-8")


def test_history_blob_round_trips():
    store = MemoryStore({"bayad:history": _bill_blob("10", "10")})
    [bill] = SessionRepository(store).load_history()
    assert bill.total == Decimal("10")
    assert bill.results[0].line_items[0].share == Decimal("10")


@pytest.mark.parametrize("total, share", [("abc", "10"), ("10", "??")])
def test_history_with_non_numeric_amounts_falls_back(total, share):
    repo = SessionRepository(MemoryStore({"bayad:history": _bill_blob(total, share)}))
    assert repo.load_history() == []
    assert len(HistoryStore(repo)) == 0


def test_round_trip_keeps_decimal_precision():
    repo = SessionRepository(MemoryStore(), key_prefix="t")
    repo.save_items([Item(id="i1", name="Tea", price=Decimal("33.3333"), assigned_person_ids=("a", "b"))])
    repo.save_people([Person(id="a", name="Ana"), Person(id="b", name="Ben", color_tag="bg-pink-500")])
    [tea] = repo.load_items()
    assert tea.price == Decimal("33.3333")
    assert tea.assigned_person_ids == ("a", "b")
    assert repo.load_people()[1].color_tag == "bg-pink-500"
    assert repo.store.get("t:items") is not None


class BrokenStore:
    def get(self, key):
        raise PersistenceFailure("store offline")

    def set(self, key, value):
        raise PersistenceFailure("store offline")

    def delete(self, key):
        raise PersistenceFailure("store offline")


def test_read_failures_fall_back_and_write_failures_raise():
    repo = SessionRepository(BrokenStore())
    assert [p.name for p in repo.load_people()] == ["Me"]
    assert repo.load_history() == []
    with pytest.raises(PersistenceFailure):
        repo.save_paid({"1": True})
    with pytest.raises(PersistenceFailure):
        repo.delete_history()


class FakeCursor:
    def __init__(self, db):
        self.db = db
        self.row = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=()):
        sql = " ".join(sql.split())
        self.db.executed.append(sql)
        if sql.startswith("SELECT value FROM kv_store"):
            value = self.db.rows.get(params[0])
            self.row = (value,) if value is not None else None
        elif sql.startswith("INSERT INTO kv_store"):
            self.db.rows[params[0]] = params[1]
        elif sql.startswith("DELETE FROM kv_store"):
            self.db.rows.pop(params[0], None)

    def fetchone(self):
        return self.row


class FakeConnection:
    def __init__(self, db):
        self.db = db

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def cursor(self):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1


class FakeDb:
    def __init__(self):
        self.rows = {}
        self.executed = []
        self.commits = 0


def test_postgres_store_round_trip(monkeypatch):
    db = FakeDb()
    monkeypatch.setattr("bayad.db.store.psycopg.connect", lambda url: FakeConnection(db))
    store = PostgresStore(" postgresql://localhost/bayad ")

    store.ensure_schema()
    store.set("bayad:paid", b'{"1": true}')
    assert store.get("bayad:paid") == b'{"1": true}'
    store.delete("bayad:paid")
    assert store.get("bayad:paid") is None

    assert db.executed[0].startswith("CREATE TABLE IF NOT EXISTS kv_store")
    assert db.commits == 3


def test_postgres_store_wraps_driver_errors(monkeypatch):
    def boom(url):
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr("bayad.db.store.psycopg.connect", boom)
    store = PostgresStore("postgresql://localhost/bayad")
    with pytest.raises(PersistenceFailure):
        store.get("bayad:people")
    with pytest.raises(PersistenceFailure):
        store.set("bayad:people", b"[]")


def test_postgres_store_requires_url():
    with pytest.raises(PersistenceFailure):
        PostgresStore("  ").get("x")
