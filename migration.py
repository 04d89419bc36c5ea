from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

from local_storage import (
    LOCAL_LAYOUT,
    KeyValueStore,
    managed_keys,
    read_array,
    records_for_user,
)
from models import MIGRATION_ORDER, RecordKind
from store import DocumentStore, RemoteUnavailable

logger = logging.getLogger(__name__)


class BackupWriteFailed(RuntimeError):
    pass


class MigrationStateError(ValueError):
    pass


class MigrationState(str, Enum):
    not_started = "not_started"
    backup_complete = "backup_complete"
    migrating = "migrating"
    completed = "completed"
    partially_completed = "partially_completed"


@dataclass(frozen=True)
class RecordMigrationFailed:
    kind: RecordKind
    record_id: str
    cause: str


@dataclass
class KindTally:
    success: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"success": self.success, "failed": self.failed}


@dataclass(frozen=True)
class LocalBackup:
    path: Path
    timestamp: str
    data: dict[str, str]


@dataclass(frozen=True)
class MigrationPreviewRow:
    kind: RecordKind
    key: str
    record_count: int


@dataclass
class MigrationReport:
    per_kind: dict[RecordKind, KindTally] = field(
        default_factory=lambda: {kind: KindTally() for kind in MIGRATION_ORDER}
    )
    total: KindTally = field(default_factory=KindTally)
    failures: list[RecordMigrationFailed] = field(default_factory=list)
    state: MigrationState = MigrationState.migrating
    backup_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.total.success > 0

    def as_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            kind.value: tally.as_dict() for kind, tally in self.per_kind.items()
        }
        result["total"] = self.total.as_dict()
        return result


def _map_todo(todo: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": todo.get("title"),
        "description": todo.get("description"),
        "priority": todo.get("priority"),
        "dueDate": todo.get("dueDate"),
        "completed": bool(todo.get("completed") or False),
    }


def _map_note(note: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": note.get("title"),
        "content": note.get("content"),
        "category": note.get("category"),
        "tags": note.get("tags") or [],
        "color": note.get("color"),
    }


def _map_recipe(recipe: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": recipe.get("title"),
        "description": recipe.get("description"),
        "ingredients": recipe.get("ingredients"),
        "instructions": recipe.get("instructions"),
        "prepTime": recipe.get("prepTime"),
        "cookTime": recipe.get("cookTime"),
        "servings": recipe.get("servings"),
        "category": recipe.get("category"),
        "tags": recipe.get("tags") or [],
        "imageUrl": recipe.get("imageUrl"),
    }


def _map_transaction(txn: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": txn.get("type"),
        "amount": txn.get("amount"),
        "category": txn.get("category"),
        "description": txn.get("description"),
        "date": txn.get("date"),
        "account": txn.get("account"),
    }


def _map_budget(budget: dict[str, Any]) -> dict[str, Any]:
    return {
        "category": budget.get("category"),
        "amount": budget.get("amount"),
        "period": budget.get("period") or "monthly",
    }


def _map_habit(habit: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": habit.get("name"),
        "description": habit.get("description"),
        "frequency": habit.get("frequency"),
        "target": habit.get("target"),
        "unit": habit.get("unit"),
        "color": habit.get("color"),
        "icon": habit.get("icon"),
        "completedDates": habit.get("completedDates") or [],
        "streak": habit.get("streak") or 0,
        "bestStreak": habit.get("bestStreak") or 0,
    }


FIELD_MAPPERS: dict[RecordKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
    RecordKind.todos: _map_todo,
    RecordKind.notes: _map_note,
    RecordKind.recipes: _map_recipe,
    RecordKind.transactions: _map_transaction,
    RecordKind.budgets: _map_budget,
    RecordKind.habits: _map_habit,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def user_backup_dir(backup_dir: Path, user_id: str) -> Path:
    """Directory holding one user's backups, named by a digest of the user id."""
    digest = hashlib.sha256(str(user_id).encode("utf-8")).hexdigest()[:32]
    return backup_dir / digest


class MigrationRun:
    """One migration of a user's local records into the document store.

    Records are written one at a time, kind by kind. A failing record is
    counted and logged, never raised, so the rest of the batch still runs.
    Nothing here retries or deduplicates: running twice creates duplicates.
    """

    def __init__(self, service: "MigrationService", user_id: str) -> None:
        self.service = service
        self.user_id = str(user_id)
        self.state = MigrationState.not_started
        self.backup_result: Optional[LocalBackup] = None
        self.report: Optional[MigrationReport] = None

    def backup(self) -> LocalBackup:
        if self.state != MigrationState.not_started:
            raise MigrationStateError(f"Cannot back up in state {self.state.value}")
        self.backup_result = self.service.backup(self.user_id)
        self.state = MigrationState.backup_complete
        return self.backup_result

    def migrate(self) -> MigrationReport:
        if self.state != MigrationState.backup_complete:
            raise MigrationStateError(
                "Migration requires a completed backup "
                f"(current state: {self.state.value})"
            )
        self.state = MigrationState.migrating
        report = MigrationReport(
            backup_path=self.backup_result.path if self.backup_result else None
        )
        for kind in MIGRATION_ORDER:
            self._migrate_kind(kind, report.per_kind[kind], report.failures)

        report.total = KindTally(
            success=sum(t.success for t in report.per_kind.values()),
            failed=sum(t.failed for t in report.per_kind.values()),
        )
        if report.total.failed == 0:
            self.state = MigrationState.completed
        else:
            self.state = MigrationState.partially_completed
        report.state = self.state
        self.report = report
        logger.info(
            f"migration_finished: user_id={self.user_id} state={self.state.value} "
            f"success={report.total.success} failed={report.total.failed}"
        )
        return report

    def _migrate_kind(
        self,
        kind: RecordKind,
        tally: KindTally,
        failures: list[RecordMigrationFailed],
    ) -> None:
        records = records_for_user(self.service.local, kind, self.user_id)
        mapper = FIELD_MAPPERS[kind]
        unavailable: Optional[str] = None
        for idx, record in enumerate(records):
            record_id = str(record.get("id") or f"#{idx}")
            if unavailable:
                tally.failed += 1
                failures.append(RecordMigrationFailed(kind, record_id, unavailable))
                continue
            try:
                self.service.store.create(kind, self.user_id, mapper(record))
                tally.success += 1
            except RemoteUnavailable as exc:
                unavailable = str(exc) or "Document store unavailable"
                tally.failed += 1
                failures.append(RecordMigrationFailed(kind, record_id, unavailable))
                logger.error(
                    f"migration_store_unavailable: kind={kind.value} "
                    f"remaining={len(records) - idx - 1}"
                )
            except Exception as exc:
                tally.failed += 1
                failures.append(RecordMigrationFailed(kind, record_id, str(exc)))
                logger.warning(
                    f"migration_item_failed: kind={kind.value} record_id={record_id} "
                    f"error={exc}"
                )
        logger.info(
            f"migration_kind_done: kind={kind.value} success={tally.success} "
            f"failed={tally.failed}"
        )


class MigrationService:
    def __init__(
        self,
        local: KeyValueStore,
        store: DocumentStore,
        backup_dir: Path,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.local = local
        self.store = store
        self.backup_dir = backup_dir
        self.clock = clock

    def needs_migration(self) -> bool:
        return any(read_array(self.local, key) for key in managed_keys(self.local))

    def preview(self, user_id: str) -> list[MigrationPreviewRow]:
        return [
            MigrationPreviewRow(
                kind=kind,
                key=LOCAL_LAYOUT[kind].key_for(str(user_id)),
                record_count=len(records_for_user(self.local, kind, str(user_id))),
            )
            for kind in MIGRATION_ORDER
        ]

    def backup(self, user_id: str) -> LocalBackup:
        """Write every managed local key to a new file in the user's backup dir."""
        now = self.clock()
        data: dict[str, str] = {}
        for key in managed_keys(self.local):
            raw = self.local.get(key)
            if raw:
                data[key] = raw
        timestamp = now.isoformat()
        target_dir = user_backup_dir(self.backup_dir, user_id)
        name = f"todo-app-backup-{int(now.timestamp() * 1000)}-{uuid4().hex[:8]}.json"
        path = target_dir / name
        try:
            payload = json.dumps({"timestamp": timestamp, "data": data}, indent=2)
            target_dir.mkdir(parents=True, exist_ok=True)
            with path.open("x", encoding="utf-8") as fh:
                fh.write(payload)
        except (OSError, TypeError, ValueError) as exc:
            logger.error(f"migration_backup_failed: path={path} error={exc}")
            raise BackupWriteFailed(f"Could not write backup to {path}") from exc
        logger.info(f"migration_backup_written: path={path} keys={len(data)}")
        return LocalBackup(path=path, timestamp=timestamp, data=data)

    def start(self, user_id: str) -> MigrationRun:
        return MigrationRun(self, user_id)

    def migrate_all(self, user_id: str) -> MigrationReport:
        run = self.start(user_id)
        run.backup()
        return run.migrate()

    def clear_local_data(
        self, report: Optional[MigrationReport], *, confirm: bool = False
    ) -> list[str]:
        """Remove every local key once a run has reported; returns removed keys."""
        if report is None:
            raise MigrationStateError(
                "Local data can only be cleared after a migration report"
            )
        if not confirm:
            logger.info("migration_clear_skipped: confirm=False")
            return []
        removed = managed_keys(self.local)
        for key in removed:
            self.local.remove(key)
        logger.info(f"migration_local_cleared: keys={len(removed)}")
        return removed
