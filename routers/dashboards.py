"""
Dashboard and report APIs.
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from database.models import User
from auth.dependencies import get_current_user, get_db_session, require_staff
from core.utils import utcnow
from services.report_service import ReportService


router = APIRouter(tags=["dashboards"])


@router.get("/api/dashboard/student")
async def student_dashboard(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Document stats, recent documents, announcements, requirements and unread counts."""
    return ReportService.student_dashboard(db, current_user)


@router.get("/api/dashboard/admin")
async def admin_dashboard(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    return ReportService.admin_dashboard(db)


@router.get("/api/reports")
async def report_summary(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    return ReportService.report_data(db)


@router.get("/api/reports/export")
async def export_report(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    return Response(
        content=ReportService.report_csv(ReportService.report_data(db)),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=relatorio-{utcnow().strftime('%Y-%m-%d')}.csv"
        }
    )
