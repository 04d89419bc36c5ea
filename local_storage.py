from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from models import RecordKind

logger = logging.getLogger(__name__)

TODOS_KEY = "todo_app_todos"
NOTES_KEY = "todo_app_notes"
RECIPES_KEY = "todo_app_recipes"
TRANSACTIONS_KEY = "todo_app_transactions"
BUDGETS_KEY = "finance_budgets"
SAVINGS_KEY = "finance_savings"
HABITS_KEY_PREFIX = "habits_"

# Keys shared by every local user; records carry their owner in a field.
SHARED_KEYS = (
    TODOS_KEY,
    NOTES_KEY,
    RECIPES_KEY,
    TRANSACTIONS_KEY,
    BUDGETS_KEY,
    SAVINGS_KEY,
)

OWNER_FIELDS = ("userId", "ownerId")


@dataclass(frozen=True)
class LocalKeyLayout:
    key: str
    per_user_key: bool
    filter_by_owner: bool
    # Records without any owner field still belong to the local user.
    keep_unowned: bool = False

    def key_for(self, user_id: str) -> str:
        if self.per_user_key:
            return f"{self.key}{user_id}"
        return self.key


LOCAL_LAYOUT: dict[RecordKind, LocalKeyLayout] = {
    RecordKind.todos: LocalKeyLayout(TODOS_KEY, False, True),
    RecordKind.notes: LocalKeyLayout(NOTES_KEY, False, True),
    RecordKind.recipes: LocalKeyLayout(RECIPES_KEY, False, True),
    RecordKind.transactions: LocalKeyLayout(TRANSACTIONS_KEY, False, True),
    RecordKind.budgets: LocalKeyLayout(BUDGETS_KEY, False, True, keep_unowned=True),
    RecordKind.habits: LocalKeyLayout(HABITS_KEY_PREFIX, True, False),
}


class KeyValueStore(ABC):
    """String-valued key-value storage, the shape of a browser's localStorage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, snapshot: Optional[Mapping[str, str]] = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (snapshot or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            value = json.dumps(value)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())


def managed_keys(store: KeyValueStore) -> list[str]:
    """Every key the app owns locally, including all per-user habit keys."""
    present = set(store.keys())
    keys = [key for key in SHARED_KEYS if key in present]
    keys.extend(
        sorted(key for key in present if key.startswith(HABITS_KEY_PREFIX))
    )
    return keys


def read_array(store: KeyValueStore, key: str) -> list[dict[str, Any]]:
    raw = store.get(key)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"local_storage_corrupt: key={key} reason=invalid_json")
        return []
    if not isinstance(data, list):
        logger.warning(f"local_storage_corrupt: key={key} reason=not_an_array")
        return []
    return [item for item in data if isinstance(item, dict)]


def record_owner(record: Mapping[str, Any]) -> Optional[str]:
    for name in OWNER_FIELDS:
        value = record.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def records_for_user(
    store: KeyValueStore, kind: RecordKind, user_id: str
) -> list[dict[str, Any]]:
    layout = LOCAL_LAYOUT[kind]
    records = read_array(store, layout.key_for(user_id))
    if not layout.filter_by_owner:
        return records
    selected = []
    for record in records:
        owner = record_owner(record)
        if owner is None:
            if layout.keep_unowned:
                selected.append(record)
            continue
        if owner == str(user_id):
            selected.append(record)
    return selected
