from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Enum as SAEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class RecordKind(str, Enum):
    todos = "todos"
    notes = "notes"
    recipes = "recipes"
    transactions = "transactions"
    budgets = "budgets"
    habits = "habits"


# Order in which local data is migrated.
MIGRATION_ORDER: tuple[RecordKind, ...] = (
    RecordKind.todos,
    RecordKind.notes,
    RecordKind.recipes,
    RecordKind.transactions,
    RecordKind.budgets,
    RecordKind.habits,
)


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class BudgetPeriod(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class TodoPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


def _new_id() -> str:
    return uuid4().hex


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    kind: Mapped[RecordKind] = mapped_column(SAEnum(RecordKind), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_documents_owner_kind_created", "owner_id", "kind", "created_at"),
    )

    def as_record(self) -> dict[str, Any]:
        record = dict(self.fields or {})
        record["id"] = self.id
        record["userId"] = self.owner_id
        record["createdAt"] = self.created_at.isoformat() if self.created_at else None
        record["updatedAt"] = self.updated_at.isoformat() if self.updated_at else None
        return record
