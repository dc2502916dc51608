"""
Audit log APIs (Admin).
"""
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session
from typing import Optional

from database.models import User
from auth.dependencies import get_db_session, require_admin
from core.utils import utcnow
from services.audit_service import AuditService, distinct_values, export_csv, filter_logs


router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("")
async def list_audit_logs(
    search: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    table: Optional[str] = Query(None),
    window: str = Query("all", description="all | today | week | month"),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Most recent audit entries, filtered in memory.

    The action and table option lists come from the fetched entries, so the
    filter dropdowns only offer values that exist.
    """
    logs = AuditService.recent(db, limit=limit)
    filtered = filter_logs(logs, search=search, action=action, table=table, window=window)
    return {
        "data": [AuditService.serialize(log) for log in filtered],
        "total": len(logs),
        "filtered": len(filtered),
        "actions": distinct_values(logs, "action_type"),
        "tables": distinct_values(logs, "table_name"),
    }


@router.get("/export")
async def export_audit_logs(
    search: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    table: Optional[str] = Query(None),
    window: str = Query("all"),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Export the filtered entries as CSV."""
    logs = filter_logs(AuditService.recent(db, limit=limit), search=search, action=action, table=table, window=window)
    return Response(
        content=export_csv(logs),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=audit-logs-{utcnow().strftime('%Y-%m-%d')}.csv"
        }
    )
