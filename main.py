import logging
import re
from datetime import datetime
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from local_storage import InMemoryKeyValueStore
from migration import (
    BackupWriteFailed,
    MigrationService,
    MigrationState,
    user_backup_dir,
)
from models import RecordKind
from periods import resolve_period
from services import FinanceService, RecordService
from store import (
    RecordNotFound,
    RemoteUnavailable,
    SQLDocumentStore,
    Unauthenticated,
    WriteRejected,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Hub")

BACKUP_NAME_RE = re.compile(r"^todo-app-backup-\d+-[0-9a-f]{8}\.json$")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_id.strip()


@app.exception_handler(RecordNotFound)
def record_not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(WriteRejected)
def write_rejected_handler(request: Request, exc: WriteRejected):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(Unauthenticated)
def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(RemoteUnavailable)
def remote_unavailable_handler(request: Request, exc: RemoteUnavailable):
    logger.error(f"store_unavailable: path={request.url.path} error={exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def period_params(
    request: Request, default: str
) -> tuple[str, Optional[str], Optional[str]]:
    period_slug = request.query_params.get("period") or default
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return period_slug, start, end


def _finance_service(db: Session, user_id: str) -> FinanceService:
    return FinanceService(SQLDocumentStore(db), user_id, get_settings())


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/api/finance/summary")
def finance_summary(
    request: Request,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    period_slug, start, end = period_params(request, "month")
    summary = _finance_service(db, user_id).summary(
        period_slug, start, end
    )
    return summary.as_dict()


@app.get("/api/finance/budgets/progress")
def finance_budget_progress(
    user_id: str = Depends(get_user_id), db: Session = Depends(get_db)
):
    progress = _finance_service(db, user_id).budget_progress()
    return [
        {
            "category": row.category,
            "period": row.period.value,
            "amount_cents": row.amount_cents,
            "spent_cents": row.spent_cents,
            "remaining_cents": row.remaining_cents,
            "is_over_budget": row.is_over_budget,
            "percentage": row.percentage,
        }
        for row in progress
    ]


@app.get("/api/finance/report.csv")
def finance_report_csv(
    request: Request,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    period_slug, start, end = period_params(request, "all")
    csv_text = _finance_service(db, user_id).export_csv(
        period_slug, start, end
    )
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"finance_report_{period_slug}_{timestamp}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _migration_service(snapshot: dict[str, Any], db: Session) -> MigrationService:
    return MigrationService(
        InMemoryKeyValueStore(snapshot),
        SQLDocumentStore(db),
        get_settings().backup_dir,
    )


@app.post("/api/migration/preview")
def migration_preview(
    snapshot: dict[str, Any] = Body(...),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    service = _migration_service(snapshot, db)
    rows = service.preview(user_id)
    return {
        "needs_migration": service.needs_migration(),
        "kinds": [
            {"kind": row.kind.value, "key": row.key, "records": row.record_count}
            for row in rows
        ],
    }


@app.post("/api/migration")
def run_migration(
    snapshot: dict[str, Any] = Body(...),
    confirm_clear: bool = False,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    service = _migration_service(snapshot, db)
    try:
        report = service.migrate_all(user_id)
    except BackupWriteFailed as exc:
        logger.exception("Migration aborted before any writes")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    cleared: list[str] = []
    if report.state == MigrationState.completed and report.succeeded:
        cleared = service.clear_local_data(report, confirm=confirm_clear)

    return {
        "state": report.state.value,
        "backup": report.backup_path.name if report.backup_path else None,
        "results": report.as_dict(),
        "failures": [
            {"kind": f.kind.value, "record_id": f.record_id, "cause": f.cause}
            for f in report.failures
        ],
        "cleared_keys": cleared,
    }


@app.get("/api/migration/backups/{name}")
def download_backup(name: str, user_id: str = Depends(get_user_id)):
    if not BACKUP_NAME_RE.fullmatch(name):
        raise HTTPException(status_code=400, detail="Invalid backup name")
    path = user_backup_dir(get_settings().backup_dir, user_id) / name
    if not path.exists():
        raise HTTPException(status_code=404, detail="Backup not found")
    return FileResponse(path, media_type="application/json", filename=name)


@app.get("/api/{kind}")
def list_records(
    kind: RecordKind,
    order_by: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return RecordService(SQLDocumentStore(db), kind, user_id).list_all(order_by)


@app.post("/api/{kind}", status_code=201)
def create_record(
    kind: RecordKind,
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return RecordService(SQLDocumentStore(db), kind, user_id).create(payload)


@app.get("/api/{kind}/{record_id}")
def get_record(
    kind: RecordKind,
    record_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return RecordService(SQLDocumentStore(db), kind, user_id).get(record_id)


@app.patch("/api/{kind}/{record_id}")
def update_record(
    kind: RecordKind,
    record_id: str,
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return RecordService(SQLDocumentStore(db), kind, user_id).update(record_id, payload)


@app.delete("/api/{kind}/{record_id}", status_code=204)
def delete_record(
    kind: RecordKind,
    record_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    RecordService(SQLDocumentStore(db), kind, user_id).delete(record_id)


@app.post("/api/todos/{record_id}/toggle")
def toggle_todo(
    record_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return RecordService(SQLDocumentStore(db), RecordKind.todos, user_id).toggle(
        record_id
    )
