from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from aggregation import (
    BudgetUtilization,
    FinancialSummary,
    aggregate,
    budget_progress,
    category_normalizer,
    coerce_entry,
)
from config import Settings, get_settings
from csv_utils import export_transactions
from models import RecordKind
from periods import resolve_period
from store import DocumentStore, RemoteUnavailable

logger = logging.getLogger(__name__)


class RecordService:
    """Thin per-kind wrapper around the document store for one user."""

    def __init__(self, store: DocumentStore, kind: RecordKind, user_id: str) -> None:
        self.store = store
        self.kind = kind
        self.user_id = user_id

    def list_all(self, order_by: Optional[str] = None) -> list[dict[str, Any]]:
        return self.store.list(self.kind, self.user_id, order_by)

    def get(self, record_id: str) -> dict[str, Any]:
        return self.store.get(self.kind, record_id, self.user_id)

    def create(self, data: Mapping[str, Any]) -> dict[str, Any]:
        record_id = self.store.create(self.kind, self.user_id, data)
        return self.get(record_id)

    def update(self, record_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return self.store.update(self.kind, record_id, self.user_id, data)

    def delete(self, record_id: str) -> None:
        self.store.delete(self.kind, record_id, self.user_id)

    def toggle(self, record_id: str) -> dict[str, Any]:
        if self.kind != RecordKind.todos:
            raise ValueError("Only todos can be toggled")
        current = self.get(record_id)
        return self.update(record_id, {"completed": not current.get("completed")})


class FinanceService:
    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.timezone)
        self.normalize = category_normalizer(self.settings.category_normalization)

    def _list_or_empty(self, kind: RecordKind) -> list[dict[str, Any]]:
        try:
            return self.store.list(kind, self.user_id)
        except RemoteUnavailable as exc:
            logger.warning(
                f"finance_source_unavailable: kind={kind.value} error={exc}"
            )
            return []

    def transactions(self) -> list[dict[str, Any]]:
        return self._list_or_empty(RecordKind.transactions)

    def budgets(self) -> list[dict[str, Any]]:
        return self._list_or_empty(RecordKind.budgets)

    def summary(
        self,
        period: Optional[str] = "month",
        start: Optional[str] = None,
        end: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> FinancialSummary:
        return aggregate(
            self.transactions(),
            now=now or datetime.now(self.tz),
            period=period,
            start=start,
            end=end,
            tz=self.tz,
            burn_rate_window_days=self.settings.burn_rate_window_days,
            normalize_category=self.normalize,
        )

    def budget_progress(
        self, *, now: Optional[datetime] = None
    ) -> list[BudgetUtilization]:
        return budget_progress(
            self.transactions(),
            self.budgets(),
            now=now or datetime.now(self.tz),
            tz=self.tz,
            normalize_category=self.normalize,
        )

    def export_csv(
        self,
        period: Optional[str] = "all",
        start: Optional[str] = None,
        end: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        today = (now or datetime.now(self.tz)).astimezone(self.tz).date()
        scope = resolve_period(period, start, end, today=today)
        rows = self.transactions()
        if scope.slug == "all":
            return export_transactions(rows)
        selected = []
        for row in rows:
            day = coerce_entry(row, self.tz).day
            if day is not None and scope.contains(day):
                selected.append(row)
        return export_transactions(selected)
