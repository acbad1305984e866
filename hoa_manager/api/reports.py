from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_admin
from ..models.models import Profile
from ..schemas.schemas import BalanceSheet, FinancialReport, IncomeStatement
from ..services import reports as report_service
from ..services.audit import audit_log

router = APIRouter()


def _csv_response(filename: str, content: str) -> Response:
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-store",
    }
    return Response(content=content, media_type="text/csv", headers=headers)


def _text_response(filename: str, content: str) -> Response:
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-store",
    }
    return Response(content=content, media_type="text/plain", headers=headers)


def _audit_report_access(session: Session, actor: Profile, action: str) -> None:
    audit_log(
        db_session=session,
        actor_user_id=actor.id,
        action=action,
        target_entity_type="Report",
        target_entity_id=action,
    )


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


@router.get("/financial", response_model=FinancialReport)
def financial_report(
    days: int = Query(90),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> dict:
    try:
        return report_service.build_financial_report(db, days, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc


@router.get("/export/csv")
def export_csv(
    days: int = Query(90),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    try:
        report = report_service.export_transactions_csv(db, days, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    _audit_report_access(db, actor, "reports.transactions_csv")
    return _csv_response(report.filename, report.content)


@router.get("/export/json")
def export_json(
    days: int = Query(90),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> JSONResponse:
    try:
        report = report_service.export_report_json(db, days, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    _audit_report_access(db, actor, "reports.json")
    filename = f"hoa-report-{days}days-{(as_of or date.today()).isoformat()}.json"
    return JSONResponse(content=report, headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@router.get("/statements/balance-sheet", response_model=BalanceSheet)
def get_balance_sheet(
    period: str = Query("current"),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> dict:
    try:
        return report_service.balance_sheet(db, period, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc


@router.get("/statements/balance-sheet/export")
def export_balance_sheet(
    period: str = Query("current"),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    try:
        sheet = report_service.balance_sheet(db, period, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    _audit_report_access(db, actor, "reports.balance_sheet")
    filename = f"balance-sheet-{period}-{sheet['as_of'].isoformat()}.txt"
    return _text_response(filename, report_service.render_balance_sheet(sheet))


@router.get("/statements/income-statement", response_model=IncomeStatement)
def get_income_statement(
    period: str = Query("current"),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> dict:
    try:
        return report_service.income_statement(db, period, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc


@router.get("/statements/income-statement/export")
def export_income_statement(
    period: str = Query("current"),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    try:
        statement = report_service.income_statement(db, period, as_of)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    _audit_report_access(db, actor, "reports.income_statement")
    filename = f"income-statement-{period}-{statement['end_date'].isoformat()}.txt"
    return _text_response(filename, report_service.render_income_statement(statement))
