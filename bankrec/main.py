"""
FastAPI application for the bank reconciliation engine.

Routes are thin: each request runs one unit of work and hands off to the
engine components. Engine errors map to HTTP statuses in one place.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .database import Database, get_database
from .exceptions import (
    ConflictError,
    DependencyError,
    ErrorCode,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from .ingestion import TransactionImporter
from .models import (
    ImportProcessedPolicy,
    ReconciliationStatus,
    StatementStatus,
)
from .reconciliation import (
    AdjustmentLedger,
    MatchEngine,
    ReconciliationReporter,
    ReconciliationSession,
)
from .statements import StatementStore

logger = structlog.get_logger()
settings = get_settings()


def setup_logging():
    """Configure logging to file and console."""
    import logging
    import sys

    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer(colors=False),
    )
    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    # Configure standard logging
    logging.basicConfig(
        level=getattr(logging, settings.app_log_level.upper(), logging.INFO),
        format="%(message)s",
        handlers=handlers,
    )

    # Configure structlog to use standard logging
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Bank Reconciliation API", env=settings.app_env)
    settings.reports_dir.mkdir(parents=True, exist_ok=True)
    get_database().create_all()
    yield
    get_database().dispose()
    logger.info("Shutting down Bank Reconciliation API")


app = FastAPI(
    title="Bank Reconciliation Engine",
    description="Statement import, matching and reconciliation close",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
STATUS_BY_ERROR = [
    (NotFoundError, 404),
    (ConflictError, 409),
    (DependencyError, 503),
    (ValidationError, 400),
]


@app.exception_handler(ReconciliationError)
async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    status_code = next(
        (code for error_cls, code in STATUS_BY_ERROR if isinstance(exc, error_cls)),
        400,
    )
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, detail=exc.detail)
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.code.value)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": ErrorCode.VALIDATION_FAILED.value,
            "message": "Invalid request",
            "context": {"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                for e in exc.errors()
            ]},
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error", path=request.url.path, error=str(exc))
    error = DependencyError("Database is unavailable")
    return JSONResponse(status_code=503, content=error.to_dict())


# Dependencies
def get_db() -> Database:
    return get_database()


def get_session(db: Database = Depends(get_db)) -> Iterator[Session]:
    with db.unit_of_work() as session:
        yield session


# Request models
class StatementCreateRequest(BaseModel):
    bank_account_id: str
    statement_date: date
    start_date: date
    end_date: date
    opening_balance: Decimal
    closing_balance: Decimal
    file_name: Optional[str] = None
    notes: str = ""
    # Optional batch imported right away
    rows: Optional[List[Dict[str, Any]]] = None
    csv_content: Optional[str] = None


class StatementUpdateRequest(BaseModel):
    statement_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None
    file_name: Optional[str] = None
    notes: Optional[str] = None


class ImportRequest(BaseModel):
    statement_id: str
    rows: Optional[List[Dict[str, Any]]] = None
    csv_content: Optional[str] = None
    policy: Optional[ImportProcessedPolicy] = None


class ReconciliationCreateRequest(BaseModel):
    bank_statement_id: str
    book_balance: Decimal
    statement_balance: Optional[Decimal] = None
    reconciliation_date: Optional[date] = None
    notes: str = ""


class ReconciliationUpdateRequest(BaseModel):
    book_balance: Optional[Decimal] = None
    statement_balance: Optional[Decimal] = None
    reconciliation_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[str] = None


class CompleteRequest(BaseModel):
    override: bool = False
    override_reason: Optional[str] = None


class AutoMatchRequest(BaseModel):
    reconciliation_id: str
    description_match: Optional[bool] = None
    date_tolerance: Optional[int] = None


class ManualMatchRequest(BaseModel):
    reconciliation_id: str
    bank_transaction_id: str
    journal_line_item_id: str
    notes: str = ""


class AdjustmentCreateRequest(BaseModel):
    reconciliation_id: str
    adjustment_date: date
    description: str
    adjustment_type: str
    amount: Decimal
    status: str = "Pending"


class AdjustmentUpdateRequest(BaseModel):
    adjustment_date: Optional[date] = None
    description: Optional[str] = None
    adjustment_type: Optional[str] = None
    amount: Optional[Decimal] = None
    status: Optional[str] = None


def _run_import(importer: TransactionImporter, statement_id: str, rows, csv_content, policy=None):
    if rows is not None and csv_content is not None:
        raise ValidationError("Provide either rows or csv_content, not both")
    if csv_content is not None:
        return importer.import_csv(statement_id, csv_content, policy)
    if rows is None:
        raise ValidationError("rows or csv_content is required")
    return importer.import_batch(statement_id, rows, policy)


# API Endpoints
@app.get("/health")
def health_check(db: Database = Depends(get_db)):
    """Health check endpoint."""
    try:
        db.ping()
    except SQLAlchemyError as e:
        raise DependencyError("Database is unavailable", detail=str(e)) from e
    return {
        "status": "healthy",
        "database": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# Statements
@app.get("/statements")
def list_statements(
    bank_account_id: Optional[str] = None,
    status: Optional[StatementStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: Optional[int] = None,
    session: Session = Depends(get_session),
):
    result = StatementStore(session).list(
        bank_account_id=bank_account_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {
        "statements": [s.to_dict() for s in result.items],
        "pagination": result.pagination(),
    }


@app.get("/statements/{statement_id}")
def get_statement(statement_id: str, session: Session = Depends(get_session)):
    statement = StatementStore(session).get(statement_id)
    data = statement.to_dict()
    data["transaction_count"] = len(statement.transactions)
    return data


@app.post("/statements", status_code=201)
def create_statement(request: StatementCreateRequest, session: Session = Depends(get_session)):
    """Create a statement; an included batch is imported in the same transaction."""
    statement = StatementStore(session).create(
        bank_account_id=request.bank_account_id,
        statement_date=request.statement_date,
        start_date=request.start_date,
        end_date=request.end_date,
        opening_balance=request.opening_balance,
        closing_balance=request.closing_balance,
        file_name=request.file_name,
        notes=request.notes,
        import_method="CSV" if request.csv_content is not None else "Manual",
    )

    import_result = None
    if request.rows is not None or request.csv_content is not None:
        import_result = _run_import(
            TransactionImporter(session), statement.id, request.rows, request.csv_content
        )

    data = statement.to_dict()
    data["import"] = import_result.to_dict() if import_result else None
    return data


@app.put("/statements/{statement_id}")
def update_statement(
    statement_id: str,
    request: StatementUpdateRequest,
    session: Session = Depends(get_session),
):
    changes = request.model_dump(exclude_unset=True)
    return StatementStore(session).update(statement_id, **changes).to_dict()


@app.delete("/statements/{statement_id}")
def delete_statement(statement_id: str, session: Session = Depends(get_session)):
    StatementStore(session).delete(statement_id)
    return {"deleted": statement_id}


@app.get("/statements/{statement_id}/transactions")
def list_statement_transactions(
    statement_id: str,
    is_matched: Optional[bool] = None,
    page: int = 1,
    limit: Optional[int] = None,
    session: Session = Depends(get_session),
):
    result = StatementStore(session).list_transactions(
        statement_id, is_matched=is_matched, page=page, limit=limit
    )
    return {
        "transactions": [t.to_dict() for t in result.items],
        "pagination": result.pagination(),
    }


@app.post("/transactions/import")
def import_transactions(request: ImportRequest, session: Session = Depends(get_session)):
    result = _run_import(
        TransactionImporter(session),
        request.statement_id,
        request.rows,
        request.csv_content,
        request.policy,
    )
    return result.to_dict()


# Reconciliations
@app.get("/reconciliations")
def list_reconciliations(
    bank_account_id: Optional[str] = None,
    status: Optional[ReconciliationStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: Optional[int] = None,
    session: Session = Depends(get_session),
):
    result = ReconciliationSession(session).list(
        bank_account_id=bank_account_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {
        "reconciliations": [r.to_dict() for r in result.items],
        "pagination": result.pagination(),
    }


@app.get("/reconciliations/{reconciliation_id}")
def get_reconciliation(reconciliation_id: str, session: Session = Depends(get_session)):
    rec_session = ReconciliationSession(session)
    reconciliation = rec_session.get(reconciliation_id)
    data = reconciliation.to_dict()
    data["balance"] = rec_session.calculator.for_reconciliation(reconciliation).to_dict()
    data["matches"] = [m.to_dict() for m in reconciliation.matches]
    data["adjustments"] = [a.to_dict() for a in reconciliation.adjustments]
    return data


@app.post("/reconciliations", status_code=201)
def create_reconciliation(
    request: ReconciliationCreateRequest,
    session: Session = Depends(get_session),
):
    reconciliation = ReconciliationSession(session).create(
        bank_statement_id=request.bank_statement_id,
        book_balance=request.book_balance,
        statement_balance=request.statement_balance,
        reconciliation_date=request.reconciliation_date,
        notes=request.notes,
    )
    return reconciliation.to_dict()


@app.put("/reconciliations/{reconciliation_id}")
def update_reconciliation(
    reconciliation_id: str,
    request: ReconciliationUpdateRequest,
    session: Session = Depends(get_session),
):
    reconciliation = ReconciliationSession(session).update(
        reconciliation_id, **request.model_dump(exclude_unset=True)
    )
    return reconciliation.to_dict()


@app.post("/reconciliations/{reconciliation_id}/complete")
def complete_reconciliation(
    reconciliation_id: str,
    request: Optional[CompleteRequest] = None,
    session: Session = Depends(get_session),
):
    request = request or CompleteRequest()
    rec_session = ReconciliationSession(session)
    reconciliation = rec_session.complete(
        reconciliation_id,
        override=request.override,
        override_reason=request.override_reason,
    )
    data = reconciliation.to_dict()
    data["balance"] = rec_session.calculator.for_reconciliation(reconciliation).to_dict()
    return data


# Matching
@app.get("/unmatched/{bank_account_id}")
def list_unmatched(
    bank_account_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Session = Depends(get_session),
):
    return MatchEngine(session).list_unmatched(bank_account_id, start_date, end_date).to_dict()


@app.post("/match/auto")
def auto_match(request: AutoMatchRequest, session: Session = Depends(get_session)):
    result = MatchEngine(session).auto_match(
        request.reconciliation_id,
        description_match=request.description_match,
        date_tolerance_days=request.date_tolerance,
    )
    return result.to_dict()


@app.post("/match/manual", status_code=201)
def manual_match(request: ManualMatchRequest, session: Session = Depends(get_session)):
    match = MatchEngine(session).manual_match(
        request.reconciliation_id,
        request.bank_transaction_id,
        request.journal_line_item_id,
        request.notes,
    )
    return match.to_dict()


@app.delete("/match/{match_id}")
def unmatch(match_id: str, session: Session = Depends(get_session)):
    MatchEngine(session).unmatch(match_id)
    return {"deleted": match_id}


# Adjustments
@app.post("/adjustments", status_code=201)
def create_adjustment(request: AdjustmentCreateRequest, session: Session = Depends(get_session)):
    adjustment = AdjustmentLedger(session).add(
        request.reconciliation_id,
        adjustment_date=request.adjustment_date,
        description=request.description,
        adjustment_type=request.adjustment_type,
        amount=request.amount,
        status=request.status,
    )
    return adjustment.to_dict()


@app.put("/adjustments/{adjustment_id}")
def update_adjustment(
    adjustment_id: str,
    request: AdjustmentUpdateRequest,
    session: Session = Depends(get_session),
):
    adjustment = AdjustmentLedger(session).update(
        adjustment_id, **request.model_dump(exclude_unset=True)
    )
    return adjustment.to_dict()


@app.delete("/adjustments/{adjustment_id}")
def delete_adjustment(adjustment_id: str, session: Session = Depends(get_session)):
    AdjustmentLedger(session).delete(adjustment_id)
    return {"deleted": adjustment_id}


# Reports
@app.get("/reports/{reconciliation_id}")
def get_report(reconciliation_id: str, session: Session = Depends(get_session)):
    return ReconciliationReporter(session).build(reconciliation_id).to_dict()


@app.get("/reports/{reconciliation_id}/export")
def export_report(reconciliation_id: str, session: Session = Depends(get_session)):
    """Export a reconciliation report to a JSON file."""
    reporter = ReconciliationReporter(session)
    output_path = reporter.export_to_file(reporter.build(reconciliation_id))
    return FileResponse(
        output_path,
        media_type="application/json",
        filename=output_path.name,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bankrec.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_debug,
    )
