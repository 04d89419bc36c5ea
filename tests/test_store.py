import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import RecordKind
from services import RecordService
from store import (
    RecordNotFound,
    SQLDocumentStore,
    Unauthenticated,
    WriteRejected,
)


def make_store() -> SQLDocumentStore:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return SQLDocumentStore(Session(engine))


def test_create_keeps_only_accepted_fields_in_camel_case() -> None:
    store = make_store()

    record_id = store.create(
        RecordKind.todos,
        "user-1",
        {"title": "Buy milk", "due_date": "2024-01-05", "bogus": 1},
    )
    record = store.get(RecordKind.todos, record_id, "user-1")

    assert record["title"] == "Buy milk"
    assert record["dueDate"] == "2024-01-05"
    assert record["completed"] is False
    assert record["priority"] == "medium"
    assert record["userId"] == "user-1"
    assert "bogus" not in record


def test_create_requires_an_owner() -> None:
    store = make_store()
    with pytest.raises(Unauthenticated):
        store.create(RecordKind.notes, None, {"title": "x"})
    with pytest.raises(Unauthenticated):
        store.create(RecordKind.notes, "  ", {"title": "x"})


def test_create_rejects_invalid_transactions() -> None:
    store = make_store()
    base = {"type": "expense", "amount": 10, "category": "Food", "date": "2024-01-02"}

    with pytest.raises(WriteRejected):
        store.create(RecordKind.transactions, "user-1", {**base, "amount": -5})
    with pytest.raises(WriteRejected):
        store.create(RecordKind.transactions, "user-1", {**base, "type": "gift"})
    with pytest.raises(WriteRejected):
        store.create(RecordKind.budgets, "user-1", {"category": "Food", "amount": 0})

    record_id = store.create(RecordKind.transactions, "user-1", base)
    record = store.get(RecordKind.transactions, record_id, "user-1")
    assert record["amount"] == 10.0
    assert record["date"] == "2024-01-02"


def test_list_is_empty_and_scoped_to_owner() -> None:
    store = make_store()
    assert store.list(RecordKind.habits, "nobody") == []

    store.create(RecordKind.habits, "user-1", {"name": "Read"})
    store.create(RecordKind.habits, "user-2", {"name": "Run"})

    names = [r["name"] for r in store.list(RecordKind.habits, "user-1")]
    assert names == ["Read"]


def test_transactions_are_listed_newest_date_first() -> None:
    store = make_store()
    for day in ("2024-01-02", "2024-03-01", "2024-02-10"):
        store.create(
            RecordKind.transactions,
            "user-1",
            {"type": "expense", "amount": 1, "category": "Food", "date": day},
        )

    dates = [r["date"] for r in store.list(RecordKind.transactions, "user-1")]
    assert dates == ["2024-03-01", "2024-02-10", "2024-01-02"]

    ascending = store.list(RecordKind.transactions, "user-1", order_by="date")
    assert [r["date"] for r in ascending] == ["2024-01-02", "2024-02-10", "2024-03-01"]


def test_update_merges_and_revalidates() -> None:
    store = make_store()
    record_id = store.create(RecordKind.todos, "user-1", {"title": "Call mom"})

    updated = store.update(
        RecordKind.todos, record_id, "user-1", {"completed": True, "due_date": "2024-02-01"}
    )
    assert updated["completed"] is True
    assert updated["title"] == "Call mom"
    assert updated["dueDate"] == "2024-02-01"

    with pytest.raises(WriteRejected):
        store.update(RecordKind.todos, record_id, "user-1", {"title": ""})
    assert store.get(RecordKind.todos, record_id, "user-1")["title"] == "Call mom"


def test_records_of_other_owners_are_not_found() -> None:
    store = make_store()
    record_id = store.create(RecordKind.notes, "user-1", {"title": "Secret"})

    with pytest.raises(RecordNotFound):
        store.get(RecordKind.notes, record_id, "user-2")
    with pytest.raises(RecordNotFound):
        store.delete(RecordKind.notes, record_id, "user-2")
    with pytest.raises(RecordNotFound):
        store.get(RecordKind.recipes, record_id, "user-1")

    store.delete(RecordKind.notes, record_id, "user-1")
    with pytest.raises(RecordNotFound):
        store.get(RecordKind.notes, record_id, "user-1")


def test_record_service_toggles_todos_only() -> None:
    store = make_store()
    todos = RecordService(store, RecordKind.todos, "user-1")
    todo = todos.create({"title": "Water plants"})

    assert todos.toggle(todo["id"])["completed"] is True
    assert todos.toggle(todo["id"])["completed"] is False

    notes = RecordService(store, RecordKind.notes, "user-1")
    note = notes.create({"title": "Idea"})
    with pytest.raises(ValueError):
        notes.toggle(note["id"])


def test_amounts_above_the_cap_are_rejected() -> None:
    store = make_store()
    with pytest.raises(WriteRejected):
        store.create(
            RecordKind.transactions,
            "user-1",
            {"type": "expense", "amount": 1e30, "category": "Food", "date": "2024-01-02"},
        )
    with pytest.raises(WriteRejected):
        store.create(RecordKind.budgets, "user-1", {"category": "Food", "amount": 1e12})
