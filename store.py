from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Document, RecordKind
from schemas import SCHEMAS_BY_KIND

logger = logging.getLogger(__name__)


class Unauthenticated(PermissionError):
    pass


class WriteRejected(ValueError):
    pass


class RecordNotFound(LookupError):
    pass


class RemoteUnavailable(RuntimeError):
    pass


DEFAULT_ORDER: dict[RecordKind, str] = {RecordKind.transactions: "-date"}


def _sort_key(field_name: str):
    def key(record: Mapping[str, Any]) -> tuple[int, str]:
        value = record.get(field_name)
        if value is None:
            return (0, "")
        return (1, str(value))

    return key


def order_records(
    records: list[dict[str, Any]], order_by: Optional[str]
) -> list[dict[str, Any]]:
    """Sort by a document field; a leading ``-`` sorts descending.

    Missing values sort as the oldest entries.
    """
    if not order_by:
        order_by = "-createdAt"
    descending = order_by.startswith("-")
    field_name = order_by.lstrip("-")
    return sorted(records, key=_sort_key(field_name), reverse=descending)


class DocumentStore(ABC):
    """Per-record CRUD over user-owned documents, grouped by kind."""

    @abstractmethod
    def create(
        self, kind: RecordKind, owner_id: Optional[str], fields: Mapping[str, Any]
    ) -> str:
        """Store a new record and return its id."""

    @abstractmethod
    def list(
        self, kind: RecordKind, owner_id: Optional[str], order_by: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Return the owner's records of ``kind``; empty when there are none."""

    @abstractmethod
    def get(
        self, kind: RecordKind, record_id: str, owner_id: Optional[str]
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    def update(
        self,
        kind: RecordKind,
        record_id: str,
        owner_id: Optional[str],
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    def delete(self, kind: RecordKind, record_id: str, owner_id: Optional[str]) -> None:
        ...


def _require_owner(owner_id: Optional[str]) -> str:
    if owner_id is None or not str(owner_id).strip():
        raise Unauthenticated("User not authenticated")
    return str(owner_id)


def to_stored_names(kind: RecordKind, fields: Mapping[str, Any]) -> dict[str, Any]:
    schema = SCHEMAS_BY_KIND[kind]
    aliases = {
        name: info.alias or name for name, info in schema.model_fields.items()
    }
    return {aliases.get(key, key): value for key, value in fields.items()}


def validate_fields(kind: RecordKind, fields: Mapping[str, Any]) -> dict[str, Any]:
    schema = SCHEMAS_BY_KIND[kind]
    try:
        return schema.model_validate(dict(fields)).to_fields()
    except ValidationError as exc:
        raise WriteRejected(f"Invalid {kind.value} record: {exc}") from exc


class SQLDocumentStore(DocumentStore):
    def __init__(self, session: Session) -> None:
        self.session = session

    def _get_document(
        self, kind: RecordKind, record_id: str, owner_id: str
    ) -> Document:
        doc = self.session.get(Document, record_id)
        if not doc or doc.kind != kind or doc.owner_id != owner_id:
            raise RecordNotFound(f"{kind.value} record not found: {record_id}")
        return doc

    def create(
        self, kind: RecordKind, owner_id: Optional[str], fields: Mapping[str, Any]
    ) -> str:
        owner = _require_owner(owner_id)
        clean = validate_fields(kind, fields)
        doc = Document(kind=kind, owner_id=owner, fields=clean)
        try:
            self.session.add(doc)
            self.session.commit()
        except OperationalError as exc:
            self.session.rollback()
            raise RemoteUnavailable("Document store unavailable") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise WriteRejected(f"Could not store {kind.value} record") from exc
        return doc.id

    def list(
        self, kind: RecordKind, owner_id: Optional[str], order_by: Optional[str] = None
    ) -> list[dict[str, Any]]:
        owner = _require_owner(owner_id)
        stmt = select(Document).where(
            Document.owner_id == owner, Document.kind == kind
        )
        try:
            docs = self.session.scalars(stmt).all()
        except OperationalError as exc:
            self.session.rollback()
            raise RemoteUnavailable("Document store unavailable") from exc
        records = [doc.as_record() for doc in docs]
        return order_records(records, order_by or DEFAULT_ORDER.get(kind))

    def get(
        self, kind: RecordKind, record_id: str, owner_id: Optional[str]
    ) -> dict[str, Any]:
        owner = _require_owner(owner_id)
        try:
            return self._get_document(kind, record_id, owner).as_record()
        except OperationalError as exc:
            self.session.rollback()
            raise RemoteUnavailable("Document store unavailable") from exc

    def update(
        self,
        kind: RecordKind,
        record_id: str,
        owner_id: Optional[str],
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        owner = _require_owner(owner_id)
        try:
            doc = self._get_document(kind, record_id, owner)
            merged = dict(doc.fields or {})
            merged.update(to_stored_names(kind, fields))
            doc.fields = validate_fields(kind, merged)
            doc.updated_at = datetime.utcnow()
            self.session.commit()
        except OperationalError as exc:
            self.session.rollback()
            raise RemoteUnavailable("Document store unavailable") from exc
        self.session.refresh(doc)
        return doc.as_record()

    def delete(self, kind: RecordKind, record_id: str, owner_id: Optional[str]) -> None:
        owner = _require_owner(owner_id)
        try:
            doc = self._get_document(kind, record_id, owner)
            self.session.delete(doc)
            self.session.commit()
        except OperationalError as exc:
            self.session.rollback()
            raise RemoteUnavailable("Document store unavailable") from exc
        logger.info(f"document_deleted: kind={kind.value} id={record_id}")
