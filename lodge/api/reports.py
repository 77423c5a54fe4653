from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_module
from ..models.models import User
from ..services import attendance as attendance_service
from ..services import finance as finance_service
from ..services import reports as report_service
from ..services.audit import audit_log
from ..utils.csv_utils import csv_response
from ..utils.pdf_utils import generate_cash_flow_pdf, generate_frequency_pdf

router = APIRouter(prefix="/reports", tags=["reports"])

require_financial_reports = require_module("financial", "reports")
require_attendance_reports = require_module("chancellor", "reports")
require_member_reports = require_module("secretariat", "reports")


def _audit_report_access(session: Session, actor: User, action: str) -> None:
    audit_log(
        db_session=session,
        actor_user_id=actor.id,
        action=action,
        target_entity_type="Report",
        target_entity_id=action,
    )


@router.get("/transactions.csv")
def export_transactions(
    type: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial_reports),
) -> Response:
    report = report_service.transactions_report(db, type=type, start=start, end=end)
    _audit_report_access(db, actor, "reports.transactions")
    return csv_response(report.filename, report.content)


@router.get("/cash-flow.csv")
def export_cash_flow(
    period: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial_reports),
) -> Response:
    start, end = finance_service.resolve_period(period, start, end)
    report = report_service.cash_flow_report(db, start, end)
    _audit_report_access(db, actor, "reports.cash_flow")
    return csv_response(report.filename, report.content)


@router.get("/cash-flow.pdf")
def export_cash_flow_pdf(
    period: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial_reports),
) -> FileResponse:
    start, end = finance_service.resolve_period(period, start, end)
    summary = finance_service.cash_flow(db, start, end)
    path = generate_cash_flow_pdf(summary, start, end)
    _audit_report_access(db, actor, "reports.cash_flow_pdf")
    return FileResponse(path, media_type="application/pdf", filename=f"fluxo_caixa_{start}_{end}.pdf")


@router.get("/frequency.csv")
def export_frequency(
    db: Session = Depends(get_db),
    actor: User = Depends(require_attendance_reports),
) -> Response:
    report = report_service.frequency_report(db)
    _audit_report_access(db, actor, "reports.frequency")
    return csv_response(report.filename, report.content)


@router.get("/frequency.pdf")
def export_frequency_pdf(
    db: Session = Depends(get_db),
    actor: User = Depends(require_attendance_reports),
) -> FileResponse:
    path = generate_frequency_pdf(attendance_service.frequency_for_all(db))
    _audit_report_access(db, actor, "reports.frequency_pdf")
    return FileResponse(path, media_type="application/pdf", filename="frequencia.pdf")


@router.get("/brothers.csv")
def export_brothers(
    db: Session = Depends(get_db),
    actor: User = Depends(require_member_reports),
) -> Response:
    report = report_service.brothers_report(db)
    _audit_report_access(db, actor, "reports.brothers")
    return csv_response(report.filename, report.content)


@router.get("/contact-messages.csv")
def export_contact_messages(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_module("secretariat")),
) -> Response:
    report = report_service.contact_messages_report(db, status=status)
    _audit_report_access(db, actor, "reports.contact_messages")
    return csv_response(report.filename, report.content)
